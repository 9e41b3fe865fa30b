from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import to_utc_z


class Setting(db.Model):
    """Flat key/value shop settings (store name, address, receipt footer, ...)."""
    __tablename__ = "settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False, unique=True, index=True)
    value = db.Column(db.Text, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "updatedAt": to_utc_z(self.updated_at),
        }
