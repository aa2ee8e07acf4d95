"""Process-wide engine flags, kept in one place instead of module globals."""

from dataclasses import dataclass, field


@dataclass
class EngineState:
    annotations_visible: bool = True
    autosave_configured: bool = False
    # document handles whose visuals were already restored
    restored_documents: set[int] = field(default_factory=set)

    def reset_tracking(self) -> None:
        """Forget which documents were restored (scope change)."""
        self.restored_documents.clear()

    def reset(self) -> None:
        self.annotations_visible = True
        self.autosave_configured = False
        self.restored_documents.clear()
