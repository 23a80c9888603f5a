"""
Per-user activity log. Handlers that record actions receive an ActivityLogger
through FastAPI's dependency injection; nothing here is process-global.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from calcula.db.base import utcnow
from calcula.models.activity_log import ActivityLog

logger = logging.getLogger(__name__)

MAX_ENTRIES_PER_USER = 50

ACTION_DESCRIPTIONS = {
    "login": "Login realizado",
    "create_produto": "Produto cadastrado",
    "update_produto": "Produto atualizado",
    "delete_produto": "Produto removido",
    "create_receita": "Receita criada",
    "update_receita": "Receita atualizada",
    "delete_receita": "Receita removida",
    "create_markup": "Markup configurado",
    "update_markup": "Markup atualizado",
    "create_despesa": "Despesa cadastrada",
    "update_despesa": "Despesa atualizada",
    "create_funcionario": "Funcionário cadastrado",
    "update_funcionario": "Funcionário atualizado",
    "update_configuration": "Configuração salva",
    "create_affiliate_coupon": "Cupom de afiliado criado",
    "toggle_affiliate_coupon": "Status do cupom alterado",
    "sync_affiliate_sales": "Vendas de afiliados sincronizadas",
}


def activity_type(action: str) -> str:
    if "create" in action:
        return "create"
    if "update" in action:
        return "update"
    if "delete" in action:
        return "delete"
    if "login" in action:
        return "auth"
    return "info"


def format_time_ago(created_at: datetime, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    minutes = int((now - created_at).total_seconds() // 60)
    if minutes < 1:
        return "Agora"
    if minutes < 60:
        return f"{minutes} min atrás"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h atrás"
    days = hours // 24
    if days < 7:
        return f"{days} dia{'s' if days > 1 else ''} atrás"
    return created_at.strftime("%d/%m/%Y")


def entry_to_dict(entry: ActivityLog, now: Optional[datetime] = None) -> dict:
    return {
        "id": entry.id,
        "action": entry.action,
        "description": entry.description,
        "type": entry.type,
        "status": entry.status,
        "value": entry.value,
        "table_name": entry.table_name,
        "record_id": entry.record_id,
        "created_at": entry.created_at.isoformat(),
        "time": format_time_ago(entry.created_at, now),
    }


class ActivityLogger:
    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id

    def log(
        self,
        action: str,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        description: Optional[str] = None,
        value: Optional[str] = None,
    ) -> Optional[ActivityLog]:
        """Record an action. Never raises; a failed write is only logged."""
        entry = ActivityLog(
            user_id=self.user_id,
            action=action,
            type=activity_type(action),
            status="success",
            description=description or ACTION_DESCRIPTIONS.get(action, action),
            value=value,
            table_name=table_name,
            record_id=record_id,
        )
        try:
            self.db.add(entry)
            self.db.commit()
            self._prune()
            return entry
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Error logging activity %s for user %s: %s", action, self.user_id, e)
            return None

    def _prune(self) -> None:
        stale = (
            self.db.query(ActivityLog.id)
            .filter(ActivityLog.user_id == self.user_id)
            .order_by(ActivityLog.created_at.desc())
            .offset(MAX_ENTRIES_PER_USER)
            .all()
        )
        if stale:
            self.db.query(ActivityLog).filter(
                ActivityLog.id.in_([row.id for row in stale])
            ).delete(synchronize_session=False)
            self.db.commit()

    def recent(self, limit: int = 20) -> list[ActivityLog]:
        return (
            self.db.query(ActivityLog)
            .filter(ActivityLog.user_id == self.user_id)
            .order_by(ActivityLog.created_at.desc())
            .limit(limit)
            .all()
        )
