"""Render executor driving the mermaid CLI in a scoped temporary workspace."""

import asyncio
import shutil
import tempfile
from contextlib import suppress
from pathlib import Path
from types import TracebackType

from loguru import logger

from ..exceptions import CleanupError, RenderError, RenderFailure


class RenderWorkspace:
    """Temporary directory holding one render's input and output files.

    Acquired on ``__enter__`` and removed on every exit path. A failed removal
    is logged as a ``CleanupError`` and never replaces the original error.
    """

    INPUT_NAME = "input.mmd"
    OUTPUT_NAME = "output.png"

    def __init__(self, root: Path | str | None = None) -> None:
        self.root = Path(root) if root is not None else None
        self.directory: Path | None = None

    @property
    def input_path(self) -> Path:
        return self._require_directory() / self.INPUT_NAME

    @property
    def output_path(self) -> Path:
        return self._require_directory() / self.OUTPUT_NAME

    def __enter__(self) -> "RenderWorkspace":
        self.directory = Path(tempfile.mkdtemp(prefix="mermaid-", dir=self.root))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def release(self) -> None:
        """Remove the workspace, logging instead of raising on failure."""
        try:
            self.remove()
        except CleanupError as e:
            logger.error(f"Failed to cleanup render workspace: {e}")

    def remove(self) -> None:
        """Delete the workspace directory."""
        if self.directory is None:
            return
        try:
            shutil.rmtree(self.directory)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CleanupError(f"{self.directory}: {e}") from e
        finally:
            self.directory = None

    def _require_directory(self) -> Path:
        if self.directory is None:
            raise RuntimeError("Workspace not acquired")
        return self.directory


class MermaidExecutor:
    """Runs the mermaid CLI (``mmdc``) to turn diagram source into PNG bytes."""

    def __init__(
        self,
        command: tuple[str, ...] | list[str] = ("mmdc",),
        width: int = 5000,
        height: int = 5000,
        scale: int = 4,
        timeout: float = 60.0,
        workspace_root: Path | str | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            command: Executable and leading arguments of the renderer.
            width: Viewport width passed to the renderer.
            height: Viewport height passed to the renderer.
            scale: Device scale factor passed to the renderer.
            timeout: Seconds a single invocation may run before it is killed.
            workspace_root: Parent directory for temporary workspaces.
        """
        if not command:
            raise ValueError("Renderer command cannot be empty")
        self.command = tuple(command)
        self.width = width
        self.height = height
        self.scale = scale
        self.timeout = timeout
        self.workspace_root = workspace_root

    def available(self) -> bool:
        """Check whether the renderer executable can be found."""
        return shutil.which(self.command[0]) is not None

    def arguments(self, input_path: Path, output_path: Path) -> list[str]:
        """Full command line for one render."""
        return [
            *self.command,
            "-i",
            str(input_path),
            "-o",
            str(output_path),
            "-w",
            str(self.width),
            "-H",
            str(self.height),
            "-s",
            str(self.scale),
        ]

    async def execute(self, source: str) -> bytes:
        """Render a diagram.

        Raises:
            RenderError: The tool failed, timed out or wrote no image.
        """
        # mkdtemp stays inline so a cancelled task cannot orphan the directory
        workspace = RenderWorkspace(self.workspace_root).__enter__()
        try:
            await asyncio.to_thread(
                workspace.input_path.write_text, source, encoding="utf-8"
            )
            await self._run_tool(workspace.input_path, workspace.output_path)
            return await asyncio.to_thread(self._read_output, workspace.output_path)
        finally:
            await asyncio.to_thread(workspace.release)

    async def _run_tool(self, input_path: Path, output_path: Path) -> None:
        args = self.arguments(input_path, output_path)
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Could not start renderer {self.command[0]}: {e}")
            raise RenderError(RenderFailure.TOOL_FAILURE, f"could not start renderer: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            await self._terminate(process)
            logger.error(f"Renderer timed out after {self.timeout}s")
            raise RenderError(
                RenderFailure.TOOL_FAILURE, f"timed out after {self.timeout}s"
            ) from e
        except asyncio.CancelledError:
            await self._terminate(process)
            raise

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            logger.error(f"Renderer exited with {process.returncode}: {message}")
            raise RenderError(
                RenderFailure.TOOL_FAILURE, f"renderer exited with {process.returncode}"
            )

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        """Kill the renderer and reap it."""
        with suppress(ProcessLookupError):
            process.kill()
        await process.wait()

    def _read_output(self, output_path: Path) -> bytes:
        try:
            data = output_path.read_bytes()
        except FileNotFoundError:
            data = b""
        if not data:
            logger.error("Renderer produced no image")
            raise RenderError(RenderFailure.EMPTY_OUTPUT, "generated image is empty")
        return data
