"""ComfyUI image backend used when the client runs in image mode."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from copy import deepcopy
from datetime import datetime
import json
import logging
from pathlib import Path
import random
import re
from typing import Any
import uuid

import httpx

from .exceptions import ImageGenerationError

LOGGER = logging.getLogger(__name__)

ASPECT_RATIO_RE = re.compile(r"ar-(\d+):(\d+)")
TEXT_NODE_TYPES = frozenset({"CLIPTextEncode", "ShowText", "PrimitiveString"})
SAMPLER_NODE_TYPES = frozenset({"KSampler", "KSamplerAdvanced"})
LATENT_NODE_TYPES = frozenset({"EmptyLatentImage", "EmptySD3LatentImage"})
MAX_SEED = 2**63 - 1


def _split_aspect_ratio(prompt: str) -> tuple[str, tuple[int, int] | None]:
    match = ASPECT_RATIO_RE.search(prompt)
    if match is None:
        return prompt, None
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        return prompt, None
    return ASPECT_RATIO_RE.sub("", prompt).strip(), (width, height)


def prepare_workflow(
    workflow: dict[str, Any], prompt: str, rng: random.Random | None = None
) -> dict[str, Any]:
    """Return a copy of ``workflow`` ready to queue for ``prompt``.

    The prompt goes into the text node titled "positive", or else into the
    last text node that is not titled "negative". Sampler seeds are
    re-rolled, and an ``ar-W:H`` tag in the prompt overrides latent image
    dimensions and is stripped from the text.
    """
    rng = rng or random.Random()
    prepared = deepcopy(workflow)
    text, dimensions = _split_aspect_ratio(prompt)

    positive_id: str | None = None
    negative_id: str | None = None
    last_text_id: str | None = None
    for node_id, node in prepared.items():
        if not isinstance(node, dict):
            continue
        class_type = node.get("class_type")
        inputs = node.get("inputs")
        if not isinstance(class_type, str):
            continue

        if class_type in SAMPLER_NODE_TYPES and isinstance(inputs, dict):
            if "seed" in inputs:
                inputs["seed"] = rng.randint(0, MAX_SEED)

        if class_type in TEXT_NODE_TYPES:
            meta = node.get("_meta")
            title = meta.get("title") if isinstance(meta, dict) else None
            if isinstance(title, str):
                lowered = title.lower()
                if "positive" in lowered:
                    positive_id = node_id
                elif "negative" in lowered:
                    negative_id = node_id
            last_text_id = node_id

        if dimensions and class_type in LATENT_NODE_TYPES and isinstance(inputs, dict):
            if "width" in inputs:
                inputs["width"] = dimensions[0]
            if "height" in inputs:
                inputs["height"] = dimensions[1]

    target_id = positive_id
    if target_id is None and last_text_id is not None and last_text_id != negative_id:
        target_id = last_text_id
    if target_id is None:
        raise ImageGenerationError("Workflow has no text node to receive the prompt.")
    target_inputs = prepared[target_id].setdefault("inputs", {})
    target_inputs["text"] = text
    LOGGER.debug(
        "imaging.workflow.prepared",
        extra={
            "event": "imaging.workflow.prepared",
            "prompt_node": target_id,
            "dimensions": dimensions,
        },
    )
    return prepared


def load_workflow(path: Path) -> dict[str, Any]:
    """Read a ComfyUI API-format workflow file."""
    try:
        workflow = json.loads(path.expanduser().read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ImageGenerationError(f"Unable to read workflow {path}: {exc}") from exc
    if not isinstance(workflow, dict):
        raise ImageGenerationError(f"Workflow {path} must be a JSON object.")
    return workflow


def _unique_output_path(directory: Path, extension: str) -> Path:
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    candidate = directory / f"eko-img-{stamp}{extension}"
    counter = 1
    while candidate.exists():
        candidate = directory / f"eko-img-{stamp}-{counter}{extension}"
        counter += 1
    return candidate


def _json_object(response: httpx.Response) -> dict[str, Any]:
    payload = response.json()
    if not isinstance(payload, dict):
        raise ImageGenerationError(
            f"ComfyUI returned an unexpected response: {response.text[:200]}"
        )
    return payload


class ImageBackend:
    """Queue a workflow on ComfyUI, wait for it, and download the images."""

    def __init__(
        self,
        base_url: str,
        workflow_path: str | Path,
        timeout: int = 120,
        poll_interval: float = 1.0,
        output_dir: Path | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.workflow_path = Path(workflow_path).expanduser()
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.output_dir = output_dir or Path.cwd()
        self.client_id = f"eko-{uuid.uuid4().hex}"
        self._client = client

    async def generate(self, prompt: str) -> AsyncIterator[str]:
        """Yield a single summary line once the workflow has finished."""
        workflow = prepare_workflow(load_workflow(self.workflow_path), prompt)
        if self._client is not None:
            yield await self._run(self._client, workflow)
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield await self._run(client, workflow)

    async def _run(self, client: httpx.AsyncClient, workflow: dict[str, Any]) -> str:
        try:
            prompt_id = await self._queue_prompt(client, workflow)
            outputs = await self._wait_for_outputs(client, prompt_id)
            saved = [await self._download(client, image) for image in outputs]
        except (httpx.HTTPError, ValueError) as exc:
            raise ImageGenerationError(
                f"ComfyUI request to {self.base_url} failed: {exc}"
            ) from exc
        except OSError as exc:
            raise ImageGenerationError(f"Unable to save generated image: {exc}") from exc
        if not saved:
            return "Generation complete"
        return f"Image(s) generated: {', '.join(saved)}"

    async def _queue_prompt(
        self, client: httpx.AsyncClient, workflow: dict[str, Any]
    ) -> str:
        response = await client.post(
            f"{self.base_url}/prompt",
            json={"prompt": workflow, "client_id": self.client_id},
        )
        if response.status_code != 200:
            raise ImageGenerationError(f"ComfyUI returned error: {response.text}")
        prompt_id = _json_object(response).get("prompt_id")
        if not isinstance(prompt_id, str) or not prompt_id:
            raise ImageGenerationError("ComfyUI response did not include a prompt_id.")
        LOGGER.info(
            "imaging.prompt.queued",
            extra={"event": "imaging.prompt.queued", "prompt_id": prompt_id},
        )
        return prompt_id

    async def _wait_for_outputs(
        self, client: httpx.AsyncClient, prompt_id: str
    ) -> list[dict[str, Any]]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        while True:
            response = await client.get(f"{self.base_url}/history/{prompt_id}")
            response.raise_for_status()
            entry = _json_object(response).get(prompt_id)
            if isinstance(entry, dict):
                status = entry.get("status")
                if isinstance(status, dict) and status.get("status_str") == "error":
                    raise ImageGenerationError(
                        f"ComfyUI execution error for prompt {prompt_id}."
                    )
                outputs = entry.get("outputs")
                if isinstance(outputs, dict) and (
                    outputs
                    or (isinstance(status, dict) and status.get("completed"))
                ):
                    return [
                        image
                        for node_output in outputs.values()
                        if isinstance(node_output, dict)
                        for image in node_output.get("images", [])
                        if isinstance(image, dict) and image.get("filename")
                    ]
            if loop.time() >= deadline:
                raise ImageGenerationError(
                    f"Timed out waiting for ComfyUI prompt {prompt_id}."
                )
            await asyncio.sleep(self.poll_interval)

    async def _download(self, client: httpx.AsyncClient, image: dict[str, Any]) -> str:
        filename = str(image["filename"])
        params = {"filename": filename}
        for key in ("subfolder", "type"):
            value = image.get(key)
            if value:
                params[key] = str(value)
        response = await client.get(f"{self.base_url}/view", params=params)
        if response.status_code != 200:
            return f"{filename} (failed: status code {response.status_code})"
        target = _unique_output_path(self.output_dir, Path(filename).suffix or ".png")
        target.write_bytes(response.content)
        LOGGER.info(
            "imaging.image.saved",
            extra={"event": "imaging.image.saved", "path": str(target)},
        )
        return str(target.resolve())
