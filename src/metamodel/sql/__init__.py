"""SQL back-ends reached through SQLAlchemy engines."""

from metamodel.sql.adapter import SqlAdapter
from metamodel.sql.dataset import SqlDataSet
from metamodel.sql.metadata import reflect_schema
from metamodel.sql.update_callback import PreparedStatement, SqlUpdateCallback

__all__ = ["PreparedStatement", "SqlAdapter", "SqlDataSet", "SqlUpdateCallback", "reflect_schema"]
