from .dataset_store import DATASET_VERSION, DatasetStore, atomic_write_json

__all__ = ["DATASET_VERSION", "DatasetStore", "atomic_write_json"]
