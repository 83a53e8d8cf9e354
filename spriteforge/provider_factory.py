from .errors import ValidationError
from .export import ThreeJSExporter
from .image_gen import OpenAIImageClient, StabilityImageClient
from .models import Stage
from .placeholders import PlaceholderRiggingClient, PlaceholderVideoClient
from .tripo import TripoClient
from .video_gen import RunwayVideoClient, VeoVideoClient

PROVIDERS = {
    Stage.IMAGE: {
        "openai": OpenAIImageClient,
        "stability": StabilityImageClient,
    },
    Stage.VIDEO: {
        "veo": VeoVideoClient,
        "runway": RunwayVideoClient,
        "placeholder": PlaceholderVideoClient,
    },
    Stage.RIGGING: {
        "tripo": TripoClient,
        "placeholder": PlaceholderRiggingClient,
    },
    Stage.EXPORT: {
        "threejs": ThreeJSExporter,
    },
}

# Client name → rate-limit quota bucket (Veo shares Google's quota)
RATE_LIMIT_BUCKETS = {
    "openai": "openai",
    "stability": "stability",
    "veo": "google",
    "runway": "runway",
    "tripo": "tripo",
}


class ProviderFactory:
    @staticmethod
    def get_provider(stage: Stage, name: str, **kwargs):
        """Instantiate the client registered for `name` on `stage`."""
        registry = PROVIDERS[Stage(stage)]
        client_cls = registry.get(name)
        if client_cls is None:
            raise ValidationError(
                f"Unknown {Stage(stage).value} provider: {name}. Available: {list(registry.keys())}"
            )
        return client_cls(**kwargs)

    @staticmethod
    def list_providers(stage: Stage) -> list[str]:
        return list(PROVIDERS[Stage(stage)].keys())

    @staticmethod
    def rate_bucket(name: str):
        """Quota bucket for a client, or None for local-only providers."""
        return RATE_LIMIT_BUCKETS.get(name)
