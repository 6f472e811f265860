"""Protocol of the vendor C API.

``VidiLibrary`` mirrors the ``vidi_*`` functions one method per function.
Every method returns the raw vendor status (``0`` on success) and never
raises for vendor failures; translating statuses into exceptions is the job
of the resource layer (``vidi_client.errors``).

Buffers and images are opaque handles created by the backend
(``new_buffer``, ``new_image``, ``wrap_pixels``). Their content is read back
through ``read_buffer``, ``image_info`` and ``image_pixels``. The resource
layer never inspects a handle directly, so backends are free to use ctypes
structures or plain Python objects.
"""

from typing import Any, Optional, Protocol

import numpy as np

from vidi_client.domain.models import ImageInfo

BufferHandle = Any
ImageHandle = Any


class VidiLibrary(Protocol):
    """Structural interface of a vendor library backend."""

    # Handles

    def new_buffer(self) -> BufferHandle: ...

    def new_image(self) -> ImageHandle: ...

    def wrap_pixels(self, pixels: np.ndarray, info: ImageInfo) -> ImageHandle: ...

    def read_buffer(self, buffer: BufferHandle) -> Optional[bytes]: ...

    def image_info(self, image: ImageHandle) -> Optional[ImageInfo]: ...

    def image_pixels(self, image: ImageHandle) -> np.ndarray: ...

    # Core

    def initialize(self, gpu_mode: int, devices: str) -> int: ...

    def deinitialize(self) -> int: ...

    def debug_infos(self, sink: int, path: str) -> int: ...

    def version(self, buffer: BufferHandle) -> int: ...

    def license_get_info(self, buffer: BufferHandle) -> int: ...

    def list_compute_devices(self, buffer: BufferHandle) -> int: ...

    def optimized_gpu_memory(self, size_mb: int) -> int: ...

    def get_error_message(self, status: int, buffer: BufferHandle) -> int: ...

    # Buffers and images

    def init_buffer(self, buffer: BufferHandle) -> int: ...

    def free_buffer(self, buffer: BufferHandle) -> int: ...

    def init_image(self, image: ImageHandle) -> int: ...

    def free_image(self, image: ImageHandle) -> int: ...

    def load_image(self, path: str, image: ImageHandle) -> int: ...

    def load_image_from_memory(self, data: bytes, image_format: int, image: ImageHandle) -> int: ...

    def save_image(self, path: str, image: ImageHandle) -> int: ...

    # Runtime

    def runtime_open_workspace_from_file(self, workspace: str, path: str) -> int: ...

    def runtime_close_workspace(self, workspace: str) -> int: ...

    def runtime_list_workspaces(self, buffer: BufferHandle) -> int: ...

    def runtime_list_tools(self, workspace: str, stream: str, buffer: BufferHandle) -> int: ...

    def runtime_create_sample(self, workspace: str, stream: str, sample: str) -> int: ...

    def runtime_sample_add_image(self, workspace: str, stream: str, sample: str, image: ImageHandle) -> int: ...

    def runtime_sample_process(self, workspace: str, stream: str, tool: str, sample: str, parameters: str) -> int: ...

    def runtime_get_sample(self, workspace: str, stream: str, sample: str, buffer: BufferHandle) -> int: ...

    def runtime_free_sample(self, workspace: str, stream: str, sample: str) -> int: ...

    # Training

    def training_create_workspace(self, workspace: str, path: str) -> int: ...

    def training_workspace_add_stream(self, workspace: str, stream: str) -> int: ...

    def training_stream_add_tool(self, workspace: str, stream: str, tool: str, parent: str, tool_type: str) -> int: ...

    def training_stream_add_image_to_database(self, workspace: str, stream: str, image: ImageHandle, name: str) -> int: ...

    def training_tool_process_database(self, workspace: str, stream: str, tool: str, view_filter: str, parameters: str) -> int: ...

    def training_tool_wait(self, workspace: str, stream: str, tool: str, timeout_ms: int) -> int: ...

    def training_red_label_views(self, workspace: str, stream: str, tool: str, view_filter: str, label: str) -> int: ...

    def training_tool_get_parameter(self, workspace: str, stream: str, tool: str, parameter: str, buffer: BufferHandle) -> int: ...

    def training_tool_set_parameter(self, workspace: str, stream: str, tool: str, parameter: str, value: str) -> int: ...

    def training_tool_train(self, workspace: str, stream: str, tool: str, devices: str) -> int: ...

    def training_tool_get_status(self, workspace: str, stream: str, tool: str, buffer: BufferHandle) -> int: ...

    def training_blue_set_feature(
        self,
        workspace: str,
        stream: str,
        tool: str,
        view: str,
        index: int,
        feature: str,
        x: float,
        y: float,
        angle: float,
        size: float,
    ) -> int: ...

    def training_blue_create_model(self, workspace: str, stream: str, tool: str, model: str, flags: int) -> int: ...

    def training_model_add_node(self, workspace: str, stream: str, tool: str, model: str) -> int: ...

    def training_export_workspace_to_file(self, workspace: str, path: str, include_images: int) -> int: ...

    def training_export_runtime_workspace_to_file(self, workspace: str, path: str) -> int: ...

    def training_save_workspace(self, workspace: str, flags: int) -> int: ...

    def training_close_workspace(self, workspace: str, discard_autosave: int) -> int: ...
