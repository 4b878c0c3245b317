"""Durable local storage for the wizard's draft snapshot."""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = 'proposal_draft'


@dataclass
class DraftSnapshot:
    """What the wizard keeps locally between sessions."""
    form_data: Dict[str, Any] = field(default_factory=dict)
    current_step: int = 0
    draft_proposal_id: Optional[int] = None
    timestamp: float = 0.0  # epoch seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            'formData': self.form_data,
            'currentStep': self.current_step,
            'draftProposalId': self.draft_proposal_id,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DraftSnapshot':
        return cls(
            form_data=data.get('formData') or {},
            current_step=int(data.get('currentStep') or 0),
            draft_proposal_id=data.get('draftProposalId'),
            timestamp=float(data.get('timestamp') or 0),
        )


class LocalDraftStore:
    """
    One JSON file per namespace under `directory`.

    Writes go through a temp file and os.replace so a crash mid-write never
    leaves a truncated snapshot behind.
    """

    def __init__(self, directory: str, namespace: str = DEFAULT_NAMESPACE):
        self.directory = directory
        self.namespace = namespace

    @property
    def path(self) -> str:
        return os.path.join(self.directory, f'{self.namespace}.json')

    def save(self, snapshot: DraftSnapshot) -> None:
        os.makedirs(self.directory, exist_ok=True)
        tmp_path = f'{self.path}.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as fh:
            json.dump(snapshot.to_dict(), fh, default=str)
        os.replace(tmp_path, self.path)

    def load(self) -> Optional[DraftSnapshot]:
        """Return the stored snapshot, or None if missing or unreadable."""
        try:
            with open(self.path, 'r', encoding='utf-8') as fh:
                return DraftSnapshot.from_dict(json.load(fh))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable draft snapshot {self.path}: {e}")
            self.clear()
            return None

    def clear(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
