# oficina/core/context.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from oficina.core.errors import ForbiddenError


@dataclass(frozen=True)
class CallerContext:
    """Quem chama, em qual organização e com qual sessão de banco."""
    user_id: int
    global_role: Optional[str]
    organization_id: Optional[int]
    session: Any = field(repr=False, compare=False)
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    # marcado por permissions.require_cash_flow_access depois de liberar o acesso
    cash_flow_checked: bool = field(default=False, repr=False, compare=False)

    @property
    def is_admin(self) -> bool:
        return self.global_role == "admin"

    def require_org(self) -> int:
        if not self.organization_id:
            raise ForbiddenError("Nenhuma organização ativa. Selecione uma organização para continuar.")
        return self.organization_id
