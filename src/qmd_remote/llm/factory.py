"""Backend selection and the optional process-wide default RemoteLLM."""

from typing import Callable, Literal, Optional

from loguru import logger

from qmd_remote.config import ConfigStore, get_settings
from qmd_remote.llm.backend import LLM
from qmd_remote.llm.http import build_timeout
from qmd_remote.llm.remote import RemoteLLM

Backend = Literal["auto", "remote", "local"]
LocalFactory = Callable[[], LLM]

_default_remote_llm: Optional[RemoteLLM] = None


def get_default_remote_llm() -> RemoteLLM:
    """Get the shared RemoteLLM, creating it from settings and persisted config on first use."""
    global _default_remote_llm
    if _default_remote_llm is None:
        settings = get_settings()
        _default_remote_llm = RemoteLLM(
            settings.remote_overrides(),
            store=ConfigStore(settings.config_dir),
            timeout=build_timeout(settings.connect_timeout, settings.request_timeout),
        )
    return _default_remote_llm


def set_default_remote_llm(llm: Optional[RemoteLLM]) -> None:
    """Replace the shared RemoteLLM (None clears it)."""
    global _default_remote_llm
    _default_remote_llm = llm


def reset_default_remote_llm() -> None:
    """Forget the shared RemoteLLM so the next get rebuilds it from current config."""
    set_default_remote_llm(None)


async def dispose_default_remote_llm() -> None:
    global _default_remote_llm
    if _default_remote_llm is not None:
        await _default_remote_llm.dispose()
        _default_remote_llm = None


def create_llm(backend: Backend = "auto", local_factory: Optional[LocalFactory] = None) -> LLM:
    """Create the LLM backend selected by configuration.

    Args:
        backend: "remote", "local", or "auto" (remote when any remote URL is
            configured through settings or the config file, local otherwise)
        local_factory: Builds the local inference backend, which lives outside
            this package

    Returns:
        The selected backend

    Raises:
        ValueError: For an unknown backend name, or when the local backend is
            selected but no local_factory was given
    """
    backend_name = backend.strip().lower()

    if backend_name == "auto":
        settings = get_settings()
        configured = settings.remote_overrides().merged_over(
            ConfigStore(settings.config_dir).load()
        )
        backend_name = "remote" if configured.is_configured else "local"
        logger.debug(f"Auto-selected {backend_name} LLM backend")

    if backend_name == "remote":
        return get_default_remote_llm()

    if backend_name == "local":
        if local_factory is None:
            raise ValueError("Local LLM backend selected but no local_factory was provided")
        return local_factory()

    raise ValueError(f"Unsupported LLM backend: {backend}")
