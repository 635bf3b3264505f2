from .catalog import DEFAULT_CATALOG, ModelCatalog
from .structs import ModelMetaData

__all__ = ["DEFAULT_CATALOG", "ModelCatalog", "ModelMetaData"]
