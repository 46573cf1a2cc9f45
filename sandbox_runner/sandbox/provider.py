"""Sandbox Provider Factory.

Creates a SandboxRuntime for the configured sandbox provider (e2b or boxlite).
"""

from collections.abc import Awaitable, Callable

from sandbox_runner.config import Settings, settings
from sandbox_runner.core.logging import get_logger
from sandbox_runner.sandbox.runtime import SandboxRuntime

logger = get_logger(__name__)

# Signature the runner depends on: (env_vars, ports) -> new runtime
RuntimeFactory = Callable[[dict[str, str], list[int]], Awaitable[SandboxRuntime]]


def get_sandbox_provider(config: Settings | None = None) -> str:
    """Get the configured sandbox provider name.

    Returns:
        Provider name: "e2b" or "boxlite"
    """
    return (config or settings).sandbox_provider


def is_provider_available(config: Settings | None = None) -> tuple[bool, str]:
    """Check if the configured sandbox provider is available.

    Returns:
        Tuple of (is_available, issue_description)
    """
    config = config or settings
    provider = get_sandbox_provider(config)

    if provider == "e2b":
        if not config.e2b_api_key:
            return False, "E2B API key not configured. Set E2B_API_KEY environment variable."
        return True, ""
    elif provider == "boxlite":
        from sandbox_runner.sandbox.boxlite import BOXLITE_AVAILABLE

        if BOXLITE_AVAILABLE:
            return True, ""
        return False, (
            "BoxLite not installed. Install with: pip install 'sandbox-runner[local-sandbox]'"
        )
    else:
        return False, f"Unknown sandbox provider: {provider}"


async def create_runtime(
    env_vars: dict[str, str] | None = None,
    ports: list[int] | None = None,
    config: Settings | None = None,
) -> SandboxRuntime:
    """Create a sandbox runtime for the configured provider.

    Args:
        env_vars: Environment variables visible to every command in the sandbox
        ports: Ports the bundled server will listen on (needed by local providers
            that publish ports at creation time)
        config: Settings override (defaults to the process settings)

    Returns:
        SandboxRuntime implementation

    Raises:
        ValueError: If the provider is unknown or not configured
    """
    config = config or settings
    provider = get_sandbox_provider(config)

    if provider == "e2b":
        from e2b import AsyncSandbox

        from sandbox_runner.sandbox.e2b.runtime import E2BRuntime

        if not config.e2b_api_key:
            raise ValueError("E2B API key not configured. Set E2B_API_KEY environment variable.")

        kwargs: dict = {
            "api_key": config.e2b_api_key,
            "timeout": config.e2b_sandbox_timeout,
            "envs": env_vars or None,
        }
        if config.e2b_template_id:
            kwargs["template"] = config.e2b_template_id

        try:
            sandbox = await AsyncSandbox.create(**kwargs)
        except Exception as e:
            logger.error("e2b_sandbox_creation_failed", error=str(e))
            raise

        logger.info("e2b_sandbox_created", sandbox_id=sandbox.sandbox_id)
        return E2BRuntime(sandbox)

    elif provider == "boxlite":
        from sandbox_runner.sandbox.boxlite.runtime import BoxLiteRuntime

        return await BoxLiteRuntime.create(
            image=config.boxlite_image,
            cpus=config.boxlite_cpus,
            memory_mib=config.boxlite_memory_mib,
            disk_size_gb=config.boxlite_disk_size_gb,
            ports=ports,
            envs=env_vars,
        )

    else:
        raise ValueError(f"Unknown sandbox provider: {provider}")


def make_runtime_factory(config: Settings | None = None) -> RuntimeFactory:
    """Bind ``create_runtime`` to a settings object for use by the runner."""

    async def factory(env_vars: dict[str, str], ports: list[int]) -> SandboxRuntime:
        return await create_runtime(env_vars=env_vars, ports=ports, config=config)

    return factory
