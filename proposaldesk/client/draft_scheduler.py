"""
Client-side draft scheduler for the proposal wizard.

Coalesces form edits with a debounce timer, syncs the draft to the server
(reusing an existing draft instead of creating a duplicate) and keeps a local
snapshot so work survives reloads and offline periods.
"""
import copy
import enum
import functools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from proposaldesk.client.api_client import ProposalApiClient
from proposaldesk.client.local_store import DraftSnapshot, LocalDraftStore
from proposaldesk.exceptions import NotFoundError, ProposalDeskError, TransientIOError

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0
MAX_SNAPSHOT_AGE_SECONDS = 7 * 24 * 60 * 60


class SchedulerState(enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    SYNCING = "syncing"


@dataclass
class DraftState:
    """Server-side draft this wizard session is bound to."""
    proposal_id: Optional[int] = None
    proposal_number: Optional[str] = None
    is_existing_draft: bool = False
    last_checked_at: Optional[float] = None


def _daemon_timer(interval: float, fn: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, fn)
    timer.daemon = True
    return timer


def _has_customer(form_data: Dict[str, Any]) -> bool:
    customer = form_data.get('customer') or {}
    return bool((customer.get('name') or '').strip() and (customer.get('email') or '').strip())


class DraftScheduler:
    """
    idle -> pending (timer armed) -> syncing -> idle.

    Only one timer is armed at a time; each change re-arms it. Syncs are
    serialized by a lock, so a timer firing during an in-flight sync waits
    for it to finish.

    Every armed timer carries a generation number; a callback whose
    generation is no longer current (cancelled or superseded while it was
    already running) does nothing. Every edit bumps a revision, and the local
    store never goes back to an older revision than the last one written.
    """

    def __init__(
        self,
        api_client: ProposalApiClient,
        store: LocalDraftStore,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: Callable[[float, Callable[[], None]], Any] = _daemon_timer,
        clock: Callable[[], float] = time.time
    ):
        self.api = api_client
        self.store = store
        self.debounce_seconds = debounce_seconds
        self._timer_factory = timer_factory
        self._clock = clock

        self.form_data: Dict[str, Any] = {}
        self.current_step = 0
        self.draft = DraftState()
        self.state = SchedulerState.IDLE
        self.last_error: Optional[Exception] = None

        self._timer = None
        self._timer_generation = 0
        self._revision = 0
        self._saved_revision = -1
        self._lock = threading.Lock()
        self._sync_lock = threading.Lock()
        self._store_lock = threading.Lock()

    # -- form events --------------------------------------------------------

    def on_change(self, form_data: Dict[str, Any], current_step: Optional[int] = None) -> None:
        """Record the latest form state and (re)arm the debounce timer."""
        with self._lock:
            self.form_data = form_data
            if current_step is not None:
                self.current_step = current_step
            self._revision += 1
            self._cancel_timer()
            self._timer = self._timer_factory(
                self.debounce_seconds,
                functools.partial(self._on_timer, self._timer_generation)
            )
            self._timer.start()
            self.state = SchedulerState.PENDING

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._timer_generation:
                logger.debug(f"Ignoring stale draft timer (generation {generation})")
                return
            self._timer = None
            self._timer_generation += 1
        self.flush()

    def _cancel_timer(self) -> None:
        # Must hold _lock. Bumping the generation disarms a callback that is already running.
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _current_snapshot(self):
        with self._lock:
            return copy.deepcopy(self.form_data), self.current_step, self._revision

    # -- save cycle ---------------------------------------------------------

    def flush(self) -> bool:
        """
        Run one save cycle now.

        Syncs to the server when the customer name and email are filled in,
        then always writes the local snapshot. Returns True if the server
        accepted the save.
        """
        with self._sync_lock:
            with self._lock:
                self.state = SchedulerState.SYNCING
            form_data, _, _ = self._current_snapshot()

            synced = False
            try:
                if _has_customer(form_data):
                    synced = self._sync(form_data)
            finally:
                # Edits made while the request was in flight are what gets stored
                self._save_local(*self._current_snapshot())
                with self._lock:
                    self.state = SchedulerState.PENDING if self._timer is not None else SchedulerState.IDLE
        return synced

    def _sync(self, form_data: Dict[str, Any]) -> bool:
        try:
            if self.draft.proposal_id is None:
                existing = self.api.check_draft(form_data['customer']['email'])
                self.draft.last_checked_at = self._clock()
                if existing:
                    logger.info(f"Resuming server draft {existing.get('proposalNumber')}")
                    self.draft.proposal_id = existing['id']
                    self.draft.proposal_number = existing.get('proposalNumber')
                    self.draft.is_existing_draft = True

            payload = dict(form_data)
            if self.draft.proposal_id is not None:
                payload['id'] = self.draft.proposal_id

            result = self.api.save_proposal(payload)
        except TransientIOError as e:
            # Snapshot is still written; the next debounce cycle retries
            logger.warning(f"Draft sync deferred: {e.message}")
            self.last_error = e
            return False
        except NotFoundError as e:
            logger.warning(f"Bound draft {self.draft.proposal_id} no longer exists, unbinding: {e.message}")
            self.draft = DraftState()
            self.last_error = e
            return False
        except ProposalDeskError as e:
            logger.error(f"Draft sync rejected: {e.message}")
            self.last_error = e
            return False

        self.draft.proposal_id = result['proposalId']
        self.draft.proposal_number = result['proposalNumber']
        self.draft.is_existing_draft = self.draft.is_existing_draft or result['isDuplicate']
        self.last_error = None
        return True

    def _save_local(self, form_data: Dict[str, Any], current_step: int, revision: int) -> bool:
        with self._store_lock:
            if revision < self._saved_revision:
                logger.debug(f"Skipping local save of revision {revision}; {self._saved_revision} already stored")
                return False
            try:
                self.store.save(DraftSnapshot(
                    form_data=form_data,
                    current_step=current_step,
                    draft_proposal_id=self.draft.proposal_id,
                    timestamp=self._clock()
                ))
            except (OSError, TypeError, ValueError) as e:
                logger.warning(f"Local draft save failed: {e}")
                return False
            self._saved_revision = revision
            return True

    # -- lifecycle ----------------------------------------------------------

    def restore(self, explicit_proposal_id: Optional[int] = None) -> Optional[DraftSnapshot]:
        """
        Decide where the wizard's initial state comes from.

        An explicit proposal id wins: the local snapshot is dropped and the
        caller loads the proposal from the server. Data already in memory is
        kept as-is. Otherwise a local snapshot younger than 7 days is restored
        and returned; older ones are discarded.
        """
        if explicit_proposal_id is not None:
            self.store.clear()
            self.draft = DraftState(proposal_id=explicit_proposal_id, is_existing_draft=True)
            return None

        if self.form_data:
            return None

        snapshot = self.store.load()
        if snapshot is None:
            return None
        if self._clock() - snapshot.timestamp > MAX_SNAPSHOT_AGE_SECONDS:
            logger.info("Discarding local draft snapshot older than 7 days")
            self.store.clear()
            return None

        self.form_data = snapshot.form_data
        self.current_step = snapshot.current_step
        if snapshot.draft_proposal_id is not None:
            self.draft = DraftState(proposal_id=snapshot.draft_proposal_id, is_existing_draft=True)
        return snapshot

    def on_unload(self) -> bool:
        """Page is going away: one local save, no server round trip."""
        with self._lock:
            self._cancel_timer()
            self.state = SchedulerState.IDLE
            form_data = copy.deepcopy(self.form_data)
            current_step = self.current_step
            revision = self._revision
        if not form_data:
            return False
        return self._save_local(form_data, current_step, revision)

    def start_fresh(self) -> None:
        """Discard the current draft and begin a new proposal."""
        self._reset()
        with self._lock:
            self.form_data = {}
            self.current_step = 0
            self._revision += 1

    def mark_submitted(self) -> None:
        """The proposal was finalized; forget the local draft and the binding."""
        self._reset()

    def _reset(self) -> None:
        with self._lock:
            self._cancel_timer()
            self.state = SchedulerState.IDLE
        with self._sync_lock, self._store_lock:
            self.store.clear()
            self.draft = DraftState()
            self.last_error = None
