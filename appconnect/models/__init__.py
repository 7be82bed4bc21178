"""Models package: import all models so metadata.create_all can discover them."""

from appconnect.models.connection_record import ConnectionRecord

__all__ = ["ConnectionRecord"]
