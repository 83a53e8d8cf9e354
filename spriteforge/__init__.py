"""spriteforge: prompt → sprite → animations → rigged model → web export."""

__version__ = "0.1.0"
