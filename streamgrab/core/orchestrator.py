"""
Drives one acquisition from descriptor to saved artifact.

The flow is an explicit state machine:

    PENDING -> RESOLVING_MANIFEST -> SELECTING_REPRESENTATION -> (DECRYPTING_KEY)
            -> RETRIEVING_SEGMENTS -> ASSEMBLING -> PERSISTED | FAILED

Leaf HLS playlists skip SELECTING_REPRESENTATION; direct and audio files go
straight to RETRIEVING_SEGMENTS.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from rich.markup import escape

from streamgrab.auth.context import AuthContext
from streamgrab.auth.credentials import CredentialStore
from streamgrab.auth.store import ensure
from streamgrab.exceptions import (
    AssemblyError,
    FetchError,
    KeyFetchError,
    ManifestFetchError,
    ManifestParseError,
    RepresentationNotFoundError,
    SaveError,
    SegmentFetchError,
    StateTransitionError,
    StreamGrabError,
    UnsupportedStreamError,
)
from streamgrab.manifest import dash, hls
from streamgrab.media.decryptor import AES_BLOCK_BYTES, SegmentDecryptor
from streamgrab.models.config import EngineConfig
from streamgrab.models.stream import (
    AcquisitionResult,
    KeyInfo,
    Representation,
    SaveRequest,
    Segment,
    StreamDescriptor,
    StreamType,
)
from streamgrab.net.fetcher import SegmentFetcher
from streamgrab.storage.saver import DiskFileSaver, FileSaver
from streamgrab.utils.formatting import describe_representation, format_size
from streamgrab.utils.path import build_output_filename, resolve_url
from streamgrab.utils.structured_logger import AcquisitionLogger

from .scheduler import (
    BatchResult,
    BatchScheduler,
    FailurePolicy,
    ProgressCallback,
    SegmentTransform,
)

log = logging.getLogger(__name__)


class AcquisitionState(str, Enum):
    PENDING = "pending"
    RESOLVING_MANIFEST = "resolving_manifest"
    SELECTING_REPRESENTATION = "selecting_representation"
    DECRYPTING_KEY = "decrypting_key"
    RETRIEVING_SEGMENTS = "retrieving_segments"
    ASSEMBLING = "assembling"
    PERSISTED = "persisted"
    FAILED = "failed"


_S = AcquisitionState

TRANSITIONS: dict[AcquisitionState, frozenset[AcquisitionState]] = {
    _S.PENDING: frozenset(
        {_S.RESOLVING_MANIFEST, _S.RETRIEVING_SEGMENTS, _S.FAILED}
    ),
    _S.RESOLVING_MANIFEST: frozenset(
        {
            _S.SELECTING_REPRESENTATION,
            _S.DECRYPTING_KEY,
            _S.RETRIEVING_SEGMENTS,
            _S.FAILED,
        }
    ),
    _S.SELECTING_REPRESENTATION: frozenset(
        {_S.DECRYPTING_KEY, _S.RETRIEVING_SEGMENTS, _S.FAILED}
    ),
    _S.DECRYPTING_KEY: frozenset({_S.RETRIEVING_SEGMENTS, _S.FAILED}),
    _S.RETRIEVING_SEGMENTS: frozenset({_S.ASSEMBLING, _S.FAILED}),
    _S.ASSEMBLING: frozenset({_S.PERSISTED, _S.FAILED}),
    _S.PERSISTED: frozenset(),
    _S.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({_S.PERSISTED, _S.FAILED})


@dataclass
class RetrievalPlan:
    """What RETRIEVING_SEGMENTS has to fetch, and how strictly."""

    segments: list[Segment]
    policy: FailurePolicy = FailurePolicy.STRICT
    init_url: Optional[str] = None
    transform: Optional[SegmentTransform] = None
    end_probe: bool = False
    representation: Optional[Representation] = field(default=None, repr=False)


class AcquisitionOrchestrator:
    """
    Runs a single acquisition request. Instances are single-use; scheduler
    state is never shared between requests.
    """

    def __init__(
        self,
        descriptor: StreamDescriptor,
        fetcher: SegmentFetcher,
        config: EngineConfig | None = None,
        context: AuthContext | None = None,
        saver: FileSaver | None = None,
        on_progress: ProgressCallback | None = None,
        acquisition_logger: AcquisitionLogger | None = None,
        credential_store: CredentialStore | None = None,
    ):
        """
        Args:
            descriptor: The stream to acquire.
            fetcher: Authenticated fetcher bound to an open session.
            config: Engine settings; defaults apply when omitted.
            context: Captured credentials for the originating browsing context.
            saver: File-save collaborator. Defaults to a DiskFileSaver on
                `config.output_dir`.
            on_progress: Observer called after every batch window.
            acquisition_logger: Optional structured event logger.
            credential_store: Fallback source of cookies.
        """
        self.descriptor = descriptor
        self.fetcher = fetcher
        self.config = config or EngineConfig()
        self.context = context or AuthContext()
        self.saver = saver or DiskFileSaver(
            self.config.output_dir, overwrite=self.config.overwrite
        )
        self.on_progress = on_progress
        self.events = acquisition_logger
        self.credential_store = credential_store

        self.state = AcquisitionState.PENDING
        self.history: list[AcquisitionState] = [AcquisitionState.PENDING]

    @property
    def acquisition_id(self) -> str:
        return self.descriptor.id

    def _transition(self, new_state: AcquisitionState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise StateTransitionError(
                f"Illegal transition {self.state.value} -> {new_state.value}"
            )
        if self.events:
            self.events.state_changed(
                self.acquisition_id, self.state.value, new_state.value
            )
        log.debug(
            f"Acquisition {self.acquisition_id}: "
            f"{self.state.value} -> {new_state.value}"
        )
        self.state = new_state
        self.history.append(new_state)

    async def acquire(self) -> AcquisitionResult:
        """
        Runs the acquisition to a terminal state.

        Engine errors never propagate: they are turned into a failed result
        carrying a single textual message.

        Raises:
            StateTransitionError: If this instance was already used.
        """
        if self.state is not AcquisitionState.PENDING:
            raise StateTransitionError(
                f"Acquisition {self.acquisition_id} already ran ({self.state.value})."
            )

        started = time.monotonic()
        if self.events:
            self.events.acquisition_started(
                self.acquisition_id, self.descriptor.url, self.descriptor.type.value
            )

        try:
            result = await self._run()
        except StreamGrabError as e:
            failed_in = self.state
            if self.state not in TERMINAL_STATES:
                self._transition(AcquisitionState.FAILED)
            log.error(
                f"[red]Acquisition failed ({failed_in.value}): {escape(str(e))}[/red]"
            )
            if self.events:
                self.events.acquisition_failed(
                    self.acquisition_id, failed_in.value, str(e)
                )
            result = AcquisitionResult.failure(str(e))
        else:
            if self.events:
                self.events.acquisition_completed(
                    self.acquisition_id,
                    result.bytes_assembled,
                    result.segment_count,
                    time.monotonic() - started,
                    result.output_path,
                )

        result.state_history = [state.value for state in self.history]
        return result

    async def _run(self) -> AcquisitionResult:
        stream_type = self.descriptor.type
        if stream_type is StreamType.MSE_BLOB:
            raise UnsupportedStreamError(
                "MSE blob streams cannot be fetched directly; acquire the "
                "manifest the player loaded instead."
            )

        context = ensure(self.context, self.descriptor.url, self.credential_store)

        if stream_type is StreamType.HLS:
            plan = await self._plan_hls(context)
        elif stream_type is StreamType.DASH:
            plan = await self._plan_dash(context)
        else:
            plan = RetrievalPlan(
                segments=[Segment(url=self.descriptor.url, sequence_index=0)]
            )

        self._transition(AcquisitionState.RETRIEVING_SEGMENTS)
        init_chunk = await self._fetch_init_segment(plan.init_url, context)
        batch = await self._retrieve(plan, context)

        self._transition(AcquisitionState.ASSEMBLING)
        data = self._assemble(init_chunk, batch)

        filename = build_output_filename(
            self.descriptor.filename, self.descriptor.url, stream_type.value
        )
        try:
            path = await self.saver.save(
                SaveRequest(
                    data=data,
                    suggested_filename=filename,
                    confirm=self.config.confirm_save,
                )
            )
        except OSError as e:
            raise SaveError(f"Failed to save {filename}: {e}") from e
        self._transition(AcquisitionState.PERSISTED)
        log.info(
            f"[green]Saved {path.name} ({format_size(len(data))}, "
            f"{len(batch.chunks)} segments).[/green]"
        )
        return AcquisitionResult.success(len(data), len(batch.chunks), str(path))

    async def _fetch_manifest(self, url: str, context: AuthContext) -> str:
        try:
            return await self.fetcher.fetch_text(url, context)
        except FetchError as e:
            raise ManifestFetchError(f"Manifest fetch error: {e}") from e

    def _select(
        self,
        representations: list[Representation],
        base_url: str,
        prefer_video: bool = False,
    ) -> Representation:
        """
        Picks the caller's representation (matched by id or URL) or the
        configured default from a bandwidth-sorted list.

        Raises:
            RepresentationNotFoundError: If the requested one is not listed.
        """
        self._transition(AcquisitionState.SELECTING_REPRESENTATION)
        wanted = self.descriptor.selected_representation

        if wanted:
            candidates = {wanted, resolve_url(base_url, wanted)}
            for rep in representations:
                if rep.id in candidates or rep.url in candidates:
                    chosen = rep
                    break
            else:
                raise RepresentationNotFoundError(f"Quality not found: {wanted}")
        else:
            pool = representations
            if prefer_video:
                pool = [r for r in representations if r.is_video] or representations
            highest = self.config.preferred_quality != "lowest"
            chosen = pool[0] if highest else pool[-1]

        log.info(f"Selected {describe_representation(chosen)}")
        if self.events:
            self.events.representation_selected(
                self.acquisition_id, chosen.id, chosen.bandwidth
            )
        return chosen

    async def _plan_hls(self, context: AuthContext) -> RetrievalPlan:
        self._transition(AcquisitionState.RESOLVING_MANIFEST)
        media_url = self.descriptor.url
        text = await self._fetch_manifest(media_url, context)
        representation = None

        if hls.is_master_playlist(text):
            representations = hls.parse_master_playlist(text, media_url)
            if not representations:
                raise ManifestParseError("No representations found in playlist.")
            representation = self._select(representations, media_url)
            media_url = representation.url
            text = await self._fetch_manifest(media_url, context)

        segments = hls.parse_media_playlist(text, media_url)
        if not segments:
            raise ManifestParseError("No representations found in playlist.")

        transform = None
        key_info = hls.parse_key_directive(text, media_url)
        if key_info is not None:
            self._transition(AcquisitionState.DECRYPTING_KEY)
            try:
                transform = await self._load_key(key_info, context)
            except KeyFetchError as e:
                log.warning(
                    f"[yellow]{e} Continuing without decryption; the saved file "
                    "may not play.[/yellow]"
                )

        return RetrievalPlan(
            segments=segments,
            policy=FailurePolicy.STRICT,
            init_url=hls.parse_init_section(text, media_url),
            transform=transform,
            representation=representation,
        )

    async def _load_key(
        self, key_info: KeyInfo, context: AuthContext
    ) -> SegmentDecryptor:
        """
        Raises:
            KeyFetchError: If the key cannot be downloaded or is not 16 bytes.
        """
        try:
            response = await self.fetcher.fetch_authenticated(key_info.key_uri, context)
        except FetchError as e:
            raise KeyFetchError(f"Could not fetch decryption key: {e}.") from e
        if len(response.body) != AES_BLOCK_BYTES:
            raise KeyFetchError(
                f"Decryption key has {len(response.body)} bytes, expected "
                f"{AES_BLOCK_BYTES}."
            )
        return SegmentDecryptor(response.body, key_info.explicit_iv)

    async def _plan_dash(self, context: AuthContext) -> RetrievalPlan:
        self._transition(AcquisitionState.RESOLVING_MANIFEST)
        manifest_url = self.descriptor.url
        text = await self._fetch_manifest(manifest_url, context)

        representations = dash.parse_manifest(text, manifest_url)
        if not representations:
            raise ManifestParseError("No representations found in manifest.")
        rep = self._select(representations, manifest_url, prefer_video=True)

        template = rep.segment_template
        if template is not None and template.media:
            init_url, segments = dash.expand_segment_template(
                rep, self.config.max_track_duration
            )
            if not segments:
                raise UnsupportedStreamError(
                    f"Representation {rep.id} uses an unsupported segment template."
                )
            exact = bool(rep.presentation_duration) and template.segment_seconds > 0
            return RetrievalPlan(
                segments=segments,
                policy=FailurePolicy.TOLERANT,
                init_url=init_url,
                end_probe=not exact,
                representation=rep,
            )

        if rep.url and rep.url != manifest_url:
            return RetrievalPlan(
                segments=[Segment(url=rep.url, sequence_index=0)],
                representation=rep,
            )

        raise UnsupportedStreamError(
            f"Representation {rep.id} has neither a SegmentTemplate nor a BaseURL."
        )

    async def _fetch_init_segment(
        self, init_url: Optional[str], context: AuthContext
    ) -> Optional[bytes]:
        if not init_url:
            return None
        try:
            response = await self.fetcher.fetch_authenticated(init_url, context)
        except FetchError as e:
            raise SegmentFetchError(f"Initialization segment failed: {e}") from e
        return response.body

    async def _retrieve(
        self, plan: RetrievalPlan, context: AuthContext
    ) -> BatchResult:
        scheduler = BatchScheduler(
            self.fetcher,
            concurrency=self.config.concurrency,
            failure_budget=self.config.failure_budget,
            policy=plan.policy,
            segment_retries=self.config.segment_retries,
            retry_delay=self.config.retry_delay,
            on_progress=self.on_progress,
            acquisition_id=self.acquisition_id,
            transform=plan.transform,
            end_probe=plan.end_probe,
        )
        log.debug(
            f"Retrieving {len(plan.segments)} segments "
            f"({plan.policy.value}, concurrency {self.config.concurrency})."
        )
        batch = await scheduler.retrieve_all(plan.segments, context)
        if self.events:
            self.events.segments_retrieved(
                self.acquisition_id,
                len(batch.chunks),
                batch.failure_count,
                batch.reached_end,
            )
        return batch

    def _assemble(self, init_chunk: Optional[bytes], batch: BatchResult) -> bytes:
        """
        Raises:
            AssemblyError: If no media segment was retrieved.
        """
        if not batch.chunks:
            raise AssemblyError("No segments downloaded.")
        chunks = [init_chunk, *batch.chunks] if init_chunk else batch.chunks
        return b"".join(chunks)
