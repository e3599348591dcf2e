"""Tests for the ComfyUI image backend."""

from __future__ import annotations

import json
from pathlib import Path
import random
import tempfile
import unittest

import httpx

from eko.exceptions import ImageGenerationError
from eko.imaging import ImageBackend, load_workflow, prepare_workflow


def _workflow() -> dict:
    return {
        "3": {"class_type": "KSampler", "inputs": {"seed": 1, "steps": 20}},
        "5": {
            "class_type": "EmptyLatentImage",
            "inputs": {"width": 512, "height": 512, "batch_size": 1},
        },
        "6": {
            "class_type": "CLIPTextEncode",
            "inputs": {"text": "placeholder"},
            "_meta": {"title": "Positive Prompt"},
        },
        "7": {
            "class_type": "CLIPTextEncode",
            "inputs": {"text": "blurry"},
            "_meta": {"title": "Negative Prompt"},
        },
    }


class PrepareWorkflowTests(unittest.TestCase):
    """Validate prompt injection, seeds, and aspect-ratio handling."""

    def test_prompt_goes_to_positive_node(self) -> None:
        original = _workflow()
        prepared = prepare_workflow(original, "a red fox", rng=random.Random(1))
        self.assertEqual(prepared["6"]["inputs"]["text"], "a red fox")
        self.assertEqual(prepared["7"]["inputs"]["text"], "blurry")
        self.assertEqual(original["6"]["inputs"]["text"], "placeholder")

    def test_seed_rerolled(self) -> None:
        prepared = prepare_workflow(_workflow(), "fox", rng=random.Random(42))
        expected = random.Random(42).randint(0, 2**63 - 1)
        self.assertEqual(prepared["3"]["inputs"]["seed"], expected)

    def test_aspect_ratio_tag_overrides_dimensions(self) -> None:
        prepared = prepare_workflow(_workflow(), "ar-16:9 a wide valley")
        self.assertEqual(prepared["5"]["inputs"]["width"], 16)
        self.assertEqual(prepared["5"]["inputs"]["height"], 9)
        self.assertEqual(prepared["6"]["inputs"]["text"], "a wide valley")

    def test_untitled_last_text_node_receives_prompt(self) -> None:
        workflow = {
            "1": {"class_type": "CLIPTextEncode", "inputs": {"text": ""}},
            "2": {"class_type": "CLIPTextEncode", "inputs": {"text": ""}},
        }
        prepared = prepare_workflow(workflow, "owl")
        self.assertEqual(prepared["2"]["inputs"]["text"], "owl")
        self.assertEqual(prepared["1"]["inputs"]["text"], "")

    def test_only_negative_node_raises(self) -> None:
        workflow = {
            "7": {
                "class_type": "CLIPTextEncode",
                "inputs": {"text": ""},
                "_meta": {"title": "negative"},
            }
        }
        with self.assertRaises(ImageGenerationError):
            prepare_workflow(workflow, "owl")

    def test_load_workflow_rejects_non_object(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "workflow.json"
            path.write_text("[1, 2]", encoding="utf-8")
            with self.assertRaises(ImageGenerationError):
                load_workflow(path)
            with self.assertRaises(ImageGenerationError):
                load_workflow(Path(tmp) / "missing.json")


class ImageBackendTests(unittest.IsolatedAsyncioTestCase):
    """Drive the backend against a mocked ComfyUI server."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.workflow_path = self.tmp / "workflow.json"
        self.workflow_path.write_text(json.dumps(_workflow()), encoding="utf-8")
        self.output_dir = self.tmp / "out"
        self.output_dir.mkdir()
        self.queued: list[dict] = []
        self.history_polls = 0

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _backend(self, handler) -> ImageBackend:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.addAsyncCleanup(client.aclose)
        return ImageBackend(
            "http://comfy.local:8188/",
            self.workflow_path,
            timeout=5,
            poll_interval=0,
            output_dir=self.output_dir,
            client=client,
        )

    def _happy_handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/prompt":
            self.queued.append(json.loads(request.content))
            return httpx.Response(200, json={"prompt_id": "p1"})
        if request.url.path == "/history/p1":
            self.history_polls += 1
            if self.history_polls < 2:
                return httpx.Response(200, json={})
            return httpx.Response(
                200,
                json={
                    "p1": {
                        "status": {"status_str": "success", "completed": True},
                        "outputs": {
                            "9": {
                                "images": [
                                    {"filename": "fox.png", "subfolder": "", "type": "output"}
                                ]
                            }
                        },
                    }
                },
            )
        if request.url.path == "/view":
            self.assertEqual(request.url.params["filename"], "fox.png")
            return httpx.Response(200, content=b"PNGDATA")
        return httpx.Response(404)

    async def _collect(self, backend: ImageBackend, prompt: str) -> list[str]:
        return [line async for line in backend.generate(prompt)]

    async def test_generate_downloads_images(self) -> None:
        backend = self._backend(self._happy_handler)
        lines = await self._collect(backend, "a red fox")

        self.assertEqual(len(lines), 1)
        self.assertTrue(lines[0].startswith("Image(s) generated: "))
        saved = list(self.output_dir.iterdir())
        self.assertEqual(len(saved), 1)
        self.assertEqual(saved[0].suffix, ".png")
        self.assertEqual(saved[0].read_bytes(), b"PNGDATA")
        self.assertIn(str(saved[0].resolve()), lines[0])
        self.assertEqual(self.history_polls, 2)
        self.assertEqual(self.queued[0]["prompt"]["6"]["inputs"]["text"], "a red fox")
        self.assertEqual(self.queued[0]["client_id"], backend.client_id)

    async def test_completed_without_images(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/prompt":
                return httpx.Response(200, json={"prompt_id": "p1"})
            return httpx.Response(
                200, json={"p1": {"status": {"completed": True}, "outputs": {}}}
            )

        lines = await self._collect(self._backend(handler), "fox")
        self.assertEqual(lines, ["Generation complete"])

    async def test_queue_rejection_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text="invalid prompt")

        with self.assertRaises(ImageGenerationError) as ctx:
            await self._collect(self._backend(handler), "fox")
        self.assertIn("invalid prompt", str(ctx.exception))

    async def test_non_object_reply_raises_image_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["unexpected"])

        with self.assertRaises(ImageGenerationError) as ctx:
            await self._collect(self._backend(handler), "fox")
        self.assertIn("unexpected response", str(ctx.exception))

    async def test_non_object_history_raises_image_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/prompt":
                return httpx.Response(200, json={"prompt_id": "p1"})
            return httpx.Response(200, json=[1, 2])

        with self.assertRaises(ImageGenerationError):
            await self._collect(self._backend(handler), "fox")

    async def test_execution_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/prompt":
                return httpx.Response(200, json={"prompt_id": "p1"})
            return httpx.Response(
                200, json={"p1": {"status": {"status_str": "error"}, "outputs": {}}}
            )

        with self.assertRaises(ImageGenerationError):
            await self._collect(self._backend(handler), "fox")

    async def test_transport_failure_maps_to_image_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(ImageGenerationError):
            await self._collect(self._backend(handler), "fox")

    async def test_failed_download_is_reported_inline(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/view":
                return httpx.Response(500)
            return self._happy_handler(request)

        lines = await self._collect(self._backend(handler), "fox")
        self.assertIn("fox.png (failed: status code 500)", lines[0])
        self.assertEqual(list(self.output_dir.iterdir()), [])


if __name__ == "__main__":
    unittest.main()
