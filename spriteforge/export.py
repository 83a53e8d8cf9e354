"""
Stage 4: Web export — package the rigged (or placeholder) model for Three.js.

Writes a single preview.html next to the model; the GLB itself is referenced
in place rather than copied.
"""

import os
import logging
from pathlib import Path

from .models import Stage, StageResult
from .storage import PREVIEW_FILENAME, require_file, write_artifact

logger = logging.getLogger(__name__)

MAX_RECOMMENDED_BYTES = 5 * 1024 * 1024

PREVIEW_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>{title}</title>
  <style>body {{ margin: 0; background: #1a1a2e; }} canvas {{ display: block; }}</style>
  <script type="importmap">
    {{ "imports": {{ "three": "https://unpkg.com/three@0.160.0/build/three.module.js",
                     "three/addons/": "https://unpkg.com/three@0.160.0/examples/jsm/" }} }}
  </script>
</head>
<body>
  <script type="module">
    import * as THREE from 'three';
    import {{ GLTFLoader }} from 'three/addons/loaders/GLTFLoader.js';
    import {{ OrbitControls }} from 'three/addons/controls/OrbitControls.js';

    const scene = new THREE.Scene();
    const camera = new THREE.PerspectiveCamera(45, innerWidth / innerHeight, 0.1, 100);
    camera.position.set(0, 1.5, 3);
    const renderer = new THREE.WebGLRenderer({{ antialias: true }});
    renderer.setSize(innerWidth, innerHeight);
    document.body.appendChild(renderer.domElement);
    scene.add(new THREE.HemisphereLight(0xffffff, 0x444444, 2));
    new OrbitControls(camera, renderer.domElement);

    const clock = new THREE.Clock();
    let mixer;
    new GLTFLoader().load('{model}', (gltf) => {{
      scene.add(gltf.scene);
      if (gltf.animations.length) {{
        mixer = new THREE.AnimationMixer(gltf.scene);
        mixer.clipAction(gltf.animations[0]).play();
      }}
    }});

    renderer.setAnimationLoop(() => {{
      if (mixer) mixer.update(clock.getDelta());
      renderer.render(scene, camera);
    }});
  </script>
</body>
</html>
"""


class ThreeJSExporter:
    name = "threejs"

    async def generate(self, model: StageResult, output_dir: str, animations: list[str]) -> StageResult:
        model_path = require_file(model.artifact, "Rigged model")
        file_size = model_path.stat().st_size

        if file_size > MAX_RECOMMENDED_BYTES:
            logger.warning(
                f"[Export] File size ({file_size / 1024 / 1024:.2f}MB) exceeds recommended 5MB"
            )

        relative_model = Path(os.path.relpath(model_path, output_dir)).as_posix()
        html = PREVIEW_TEMPLATE.format(title="Character Preview", model=relative_model)
        preview_path = write_artifact(output_dir, PREVIEW_FILENAME, html)

        logger.info(f"[Export] Created preview at {preview_path}")

        return StageResult(
            stage=Stage.EXPORT,
            artifact=str(model_path),
            provider=self.name,
            metadata={
                "preview": str(preview_path),
                "file_size": file_size,
                "animations": list(animations),
                "placeholder_model": model.is_placeholder,
            },
        )
