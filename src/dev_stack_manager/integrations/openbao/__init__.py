"""OpenBao secrets manager integration."""

from dev_stack_manager.integrations.openbao.client import OpenBaoClient
from dev_stack_manager.integrations.openbao.config import OpenBaoConnectionConfig
from dev_stack_manager.integrations.openbao.exceptions import (
    OpenBaoAPIError,
    OpenBaoConfigError,
    OpenBaoConnectionError,
    OpenBaoError,
    OpenBaoSealedError,
)
from dev_stack_manager.integrations.openbao.models import InitKeys, SealStatus

__all__ = [
    "InitKeys",
    "OpenBaoAPIError",
    "OpenBaoClient",
    "OpenBaoConfigError",
    "OpenBaoConnectionConfig",
    "OpenBaoConnectionError",
    "OpenBaoError",
    "OpenBaoSealedError",
    "SealStatus",
]
