"""Listener bind settings."""

from dataclasses import dataclass


@dataclass(frozen=True)
class HttpBindings:
    """Address and port the request listener binds to.

    Attributes:
        bind_address: Host or IP address, non-empty
        port: TCP port in [1, 65535]
    """

    bind_address: str = "127.0.0.1"
    port: int = 60766

    def to_dict(self) -> dict[str, str | int]:
        return {"bind_address": self.bind_address, "port": self.port}

    def __str__(self) -> str:
        if ":" in self.bind_address:
            return f"[{self.bind_address}]:{self.port}"
        return f"{self.bind_address}:{self.port}"
