from abc import ABC, abstractmethod


class SourceFormatPlugin(ABC):
    @property
    @abstractmethod
    def source_format(self) -> str:
        ...

    @abstractmethod
    def to_canonical(self, row: dict) -> dict:
        """Rename one raw row's columns to the canonical pour report field names."""
        ...
