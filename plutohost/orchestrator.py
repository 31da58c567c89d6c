"""
Startup orchestrator for plutohost.

Runs the startup sequence once, strictly in order:

    validate -> authenticate -> synchronize -> index -> serve

Any fatal error stops the run before the next stage starts, so the server is
never launched on a partial index. There is no retry here; the container
supervisor restarts the process and the whole sequence is safe to replay.
"""
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from plutohost.credentials import AuthContext, bind_credentials
from plutohost.errors import ConfigError, PlutohostError
from plutohost.indexer import DocumentIndexer, IndexReport
from plutohost.launcher import ServerLauncher
from plutohost.repos_config import RepositoryRef, load_repos_config
from plutohost.settings import Settings
from plutohost.sync import RepositorySynchronizer, SyncResult


class PipelineState(str, Enum):
    """Stages of one pipeline run."""
    INIT = "init"
    VALIDATED = "validated"
    AUTHENTICATED = "authenticated"
    SYNCED = "synced"
    INDEXED = "indexed"
    SERVING = "serving"
    FAILED = "failed"


STAGE_ORDER = [
    PipelineState.INIT,
    PipelineState.VALIDATED,
    PipelineState.AUTHENTICATED,
    PipelineState.SYNCED,
    PipelineState.INDEXED,
    PipelineState.SERVING,
]


@dataclass
class PipelineRun:
    """State owned by a single execution of the startup sequence."""
    state: PipelineState = PipelineState.INIT
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.INIT])
    refs: List[RepositoryRef] = field(default_factory=list)
    sync_results: List[SyncResult] = field(default_factory=list)
    index_report: Optional[IndexReport] = None
    error: Optional[PlutohostError] = None
    exit_status: Optional[int] = None

    def advance(self, state: PipelineState):
        """Move to the next stage; stages cannot be skipped or repeated."""
        if self.state == PipelineState.FAILED:
            raise RuntimeError("Cannot advance a failed pipeline run")
        position = STAGE_ORDER.index(self.state)
        if position + 1 >= len(STAGE_ORDER):
            raise RuntimeError(f"Pipeline run is already {self.state.value}")
        expected = STAGE_ORDER[position + 1]
        if state != expected:
            raise RuntimeError(f"Invalid transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, error: PlutohostError):
        self.state = PipelineState.FAILED
        self.history.append(PipelineState.FAILED)
        self.error = error


SynchronizerFactory = Callable[[Settings, AuthContext], RepositorySynchronizer]


def default_synchronizer(settings: Settings, auth: AuthContext) -> RepositorySynchronizer:
    return RepositorySynchronizer(
        repos_dir=settings.repos_dir,
        auth=auth,
        remote_base_url=settings.remote_base_url,
        branches=settings.branches,
        jobs=settings.sync_jobs
    )


class Orchestrator:
    """
    Sequences the startup pipeline.

    Collaborators can be injected for testing; by default they are built
    from Settings.
    """

    def __init__(
        self,
        settings: Settings,
        synchronizer_factory: SynchronizerFactory = default_synchronizer,
        indexer: Optional[DocumentIndexer] = None,
        launcher: Optional[ServerLauncher] = None
    ):
        self.settings = settings
        self.synchronizer_factory = synchronizer_factory
        self.indexer = indexer or DocumentIndexer(
            settings.index_dir,
            publish_mode=settings.publish_mode
        )
        self.launcher = launcher or ServerLauncher(
            settings.index_dir,
            host=settings.server_host,
            port=settings.server_port,
            julia=settings.julia,
            mode=settings.launch_mode
        )
        self.last_run: Optional[PipelineRun] = None

    def print_banner(self):
        print("=== Pluto Slider Server Starting ===")
        print(f"Data directory: {self.settings.data_dir}")
        print(f"Repositories directory: {self.settings.repos_dir}")
        print(f"Index directory: {self.settings.index_dir}")
        print(f"Config file: {self.settings.repos_config_path}")
        print()

    def validate(self) -> List[RepositoryRef]:
        """
        Load the repository list and prepare data directories.

        Raises:
            ConfigError: If the config is missing/invalid or directories cannot be created
        """
        print("🔍 Validating environment...")
        refs = load_repos_config(self.settings.repos_config_path)

        for directory in (self.settings.repos_dir, self.settings.index_dir):
            try:
                Path(directory).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigError(f"Cannot create {directory}: {e}") from e

        if refs:
            print("Found repositories to sync:")
            for ref in refs:
                print(f"  - {ref.full_name}")
        else:
            print("⚠️  No repositories configured")
        return refs

    def authenticate(self) -> AuthContext:
        print("🔑 Configuring git authentication...")
        return bind_credentials(self.settings.github_token)

    def synchronize(self, refs: List[RepositoryRef], auth: AuthContext) -> List[SyncResult]:
        print(f"📥 Synchronizing {len(refs)} repositories...")
        synchronizer = self.synchronizer_factory(self.settings, auth)
        results = synchronizer.sync_all(refs)
        for result in results:
            print(f"  ✓ {result.ref.full_name} ({result.action})")
        return results

    def rebuild_index(self, refs: List[RepositoryRef]) -> IndexReport:
        """Rebuild the index from the configured repositories' working copies."""
        print("📚 Indexing notebooks...")
        working_copies = [
            (ref, self.settings.repos_dir / ref.working_copy_name()) for ref in refs
        ]
        report = self.indexer.build(working_copies)
        if report.skipped:
            print(f"⚠️  Skipped {len(report.skipped)} files without the Pluto notebook header")
        print(f"✅ Indexed {report.count} Pluto notebooks")
        return report

    def serve(self) -> int:
        print(f"🚀 Starting PlutoSliderServer at {self.launcher.url}")
        print(f"   Serving notebooks from: {self.settings.index_dir}")
        return self.launcher.launch()

    def run(self, stop_after: PipelineState = PipelineState.SERVING) -> PipelineRun:
        """
        Execute the pipeline up to and including stop_after.

        Args:
            stop_after: Last stage to run (SERVING runs everything)

        Returns:
            PipelineRun in state stop_after

        Raises:
            PlutohostError: The first fatal error; run.state is FAILED
        """
        run = PipelineRun()
        self.last_run = run
        self.print_banner()

        try:
            run.refs = self.validate()
            run.advance(PipelineState.VALIDATED)
            if stop_after == PipelineState.VALIDATED:
                return run

            auth = self.authenticate()
            run.advance(PipelineState.AUTHENTICATED)
            if stop_after == PipelineState.AUTHENTICATED:
                return run

            run.sync_results = self.synchronize(run.refs, auth)
            run.advance(PipelineState.SYNCED)
            print("✅ All repositories synchronized")
            if stop_after == PipelineState.SYNCED:
                return run

            run.index_report = self.rebuild_index(run.refs)
            run.advance(PipelineState.INDEXED)
            if stop_after == PipelineState.INDEXED:
                return run

            run.advance(PipelineState.SERVING)
            run.exit_status = self.serve()
            return run
        except PlutohostError as e:
            run.fail(e)
            print(f"❌ {e}", file=sys.stderr)
            raise

    def index_only(self) -> IndexReport:
        """Rebuild the index from existing working copies without touching the network."""
        self.print_banner()
        try:
            refs = self.validate()
            return self.rebuild_index(refs)
        except PlutohostError as e:
            print(f"❌ {e}", file=sys.stderr)
            raise
