"""Backend node identifiers mapped to human-readable step labels."""

from __future__ import annotations

from ..channels.messages import ProgressUpdate

DEFAULT_STEP_LABEL = "Processing..."

NODE_STEP_NAMES: dict[str, str] = {
    "CheckpointLoaderSimple": "Loading model...",
    "LoraLoaderModelOnly": "Loading LoRA...",
    "CLIPTextEncode": "Encoding prompt...",
    "EmptyLatentImage": "Preparing canvas...",
    "EmptySD3LatentImage": "Preparing canvas...",
    "FluxGuidance": "Configuring guidance...",
    "KSampler": "Generating latent data...",
    "VAEEncode": "Encoding data...",
    "VAEDecode": "Decoding data...",
    "VAEEncodeForInpaint": "Encoding for inpaint...",
    "LoadImage": "Loading image...",
    "LoadImageMask": "Loading mask...",
    "JWImageSaveToPath": "Saving image...",
    "SaveImage": "Saving image...",
    "JWAudioSaveToPath": "Saving audio...",
}


def step_label(update: ProgressUpdate) -> str:
    """Label a progress update by its node; step text is used only without one."""
    if update.node:
        return NODE_STEP_NAMES.get(update.node, DEFAULT_STEP_LABEL)
    return update.current_step or DEFAULT_STEP_LABEL


def counter_prefix(update: ProgressUpdate) -> str:
    if update.max_value > 0:
        return f"({update.current_value}/{update.max_value}) "
    return ""
