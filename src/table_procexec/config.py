"""Bridge configuration"""

from dataclasses import dataclass

from table_procexec.line_frame import PROTOCOL_VERSION, SMTPD_VERSION


# Default maximum host frame size (64 KB)
DEFAULT_MAX_HOST_FRAME = 65_536

# Seconds to wait for the backend to exit after its stream is closed
DEFAULT_SHUTDOWN_TIMEOUT = 5.0


@dataclass
class BridgeConfig:
    """Fixed settings for one bridge instance"""
    smtpd_version: str = SMTPD_VERSION  # Advertised in config|smtpd-version
    protocol_version: str = PROTOCOL_VERSION  # Advertised and stamped on requests
    max_host_frame: int = DEFAULT_MAX_HOST_FRAME
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT

    @classmethod
    def default(cls) -> "BridgeConfig":
        """Create default configuration"""
        return cls()
