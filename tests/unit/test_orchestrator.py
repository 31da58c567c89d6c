"""
Unit tests for the startup orchestrator.
"""
import pytest
import yaml
from unittest.mock import MagicMock, Mock
from plutohost.errors import ConfigError, MissingCredentialError, SyncError
from plutohost.indexer import DocumentIndexer, PLUTO_MARKER
from plutohost.launcher import ServerLauncher
from plutohost.orchestrator import Orchestrator, PipelineRun, PipelineState
from plutohost.repos_config import RepositoryRef
from plutohost.settings import Settings
from plutohost.sync import SyncResult


PLUTO_NOTEBOOK = f"{PLUTO_MARKER}\n# v0.19.40\n"


class FakeSynchronizer:
    """Creates working copies on disk instead of talking to git."""

    def __init__(self, repos_dir, fail_on=None):
        self.repos_dir = repos_dir
        self.fail_on = fail_on
        self.synced = []

    def sync_all(self, refs):
        results = []
        for ref in refs:
            if ref == self.fail_on:
                raise SyncError(ref, "remote unreachable")
            path = self.repos_dir / ref.working_copy_name()
            (path / "notebooks").mkdir(parents=True, exist_ok=True)
            (path / "notebooks" / "intro.jl").write_text(PLUTO_NOTEBOOK)
            self.synced.append(ref)
            results.append(SyncResult(ref=ref, path=path, action="cloned"))
        return results


@pytest.fixture
def env(tmp_path):
    config_path = tmp_path / "config" / "repos.yaml"
    config_path.parent.mkdir()
    with open(config_path, 'w') as f:
        yaml.dump({'repositories': [
            {'owner': 'alice', 'repo': f'repo{i}'} for i in range(1, 6)
        ]}, f)
    return {
        'GITHUB_TOKEN': 'ghp_test123',
        'DATA_DIR': str(tmp_path / "data"),
        'REPOS_CONFIG_PATH': str(config_path),
    }


def make_orchestrator(settings, fake, indexer=None):
    launcher = Mock(spec=ServerLauncher)
    launcher.url = "http://0.0.0.0:2345"
    launcher.launch.return_value = 0
    factory = MagicMock(return_value=fake)
    orchestrator = Orchestrator(
        settings,
        synchronizer_factory=factory,
        indexer=indexer,
        launcher=launcher
    )
    return orchestrator, factory, launcher


class TestRun:
    """Test the full startup sequence."""

    def test_full_run(self, env):
        """Should pass through every stage and launch the server once."""
        settings = Settings(env)
        fake = FakeSynchronizer(settings.repos_dir)
        orchestrator, factory, launcher = make_orchestrator(settings, fake)

        run = orchestrator.run()

        assert run.state == PipelineState.SERVING
        assert run.history == [
            PipelineState.INIT,
            PipelineState.VALIDATED,
            PipelineState.AUTHENTICATED,
            PipelineState.SYNCED,
            PipelineState.INDEXED,
            PipelineState.SERVING,
        ]
        assert run.exit_status == 0
        assert run.index_report.count == 5
        assert (settings.index_dir / "alice__repo1__intro.jl").is_symlink()
        launcher.launch.assert_called_once()

        # Synchronizer receives the bound credentials
        _, auth = factory.call_args[0]
        assert auth.token == "ghp_test123"

    def test_sync_failure_is_fatal(self, env):
        """Failure at repository 3 of 5 never reaches indexing or serving."""
        settings = Settings(env)
        fake = FakeSynchronizer(settings.repos_dir, fail_on=RepositoryRef("alice", "repo3"))
        indexer = Mock(spec=DocumentIndexer)
        orchestrator, _, launcher = make_orchestrator(settings, fake, indexer=indexer)

        with pytest.raises(SyncError):
            orchestrator.run()

        run = orchestrator.last_run
        assert run.state == PipelineState.FAILED
        assert run.history[-2:] == [PipelineState.AUTHENTICATED, PipelineState.FAILED]
        assert isinstance(run.error, SyncError)
        assert [ref.name for ref in fake.synced] == ["repo1", "repo2"]
        indexer.build.assert_not_called()
        launcher.launch.assert_not_called()

    def test_missing_token(self, env):
        """Without a token nothing is synchronized."""
        del env['GITHUB_TOKEN']
        settings = Settings(env)
        fake = FakeSynchronizer(settings.repos_dir)
        orchestrator, factory, launcher = make_orchestrator(settings, fake)

        with pytest.raises(MissingCredentialError):
            orchestrator.run()

        assert orchestrator.last_run.history[-2:] == [PipelineState.VALIDATED, PipelineState.FAILED]
        factory.assert_not_called()
        launcher.launch.assert_not_called()

    def test_missing_config(self, env, tmp_path):
        env['REPOS_CONFIG_PATH'] = str(tmp_path / "nope.yaml")
        settings = Settings(env)
        orchestrator, factory, _ = make_orchestrator(settings, FakeSynchronizer(settings.repos_dir))

        with pytest.raises(ConfigError, match="not found"):
            orchestrator.run()

        assert orchestrator.last_run.history == [PipelineState.INIT, PipelineState.FAILED]
        factory.assert_not_called()

    def test_stop_after_sync(self, env):
        """The sync command stops before touching the index."""
        settings = Settings(env)
        indexer = Mock(spec=DocumentIndexer)
        orchestrator, _, launcher = make_orchestrator(
            settings, FakeSynchronizer(settings.repos_dir), indexer=indexer
        )

        run = orchestrator.run(stop_after=PipelineState.SYNCED)

        assert run.state == PipelineState.SYNCED
        assert len(run.sync_results) == 5
        indexer.build.assert_not_called()
        launcher.launch.assert_not_called()

    def test_index_only(self, env):
        """index_only rebuilds from existing working copies without credentials."""
        del env['GITHUB_TOKEN']
        settings = Settings(env)
        FakeSynchronizer(settings.repos_dir).sync_all([RepositoryRef("alice", "repo2")])
        orchestrator, factory, _ = make_orchestrator(settings, None)

        report = orchestrator.index_only()

        assert [d.indexed_name for d in report.indexed] == ["alice__repo2__intro.jl"]
        factory.assert_not_called()


class TestPipelineRun:
    """Test pipeline state transitions."""

    def test_cannot_skip_stage(self):
        run = PipelineRun()
        with pytest.raises(RuntimeError, match="Invalid transition"):
            run.advance(PipelineState.SYNCED)

    def test_cannot_advance_after_failure(self):
        run = PipelineRun()
        run.fail(ConfigError("bad"))
        with pytest.raises(RuntimeError, match="failed"):
            run.advance(PipelineState.VALIDATED)

    def test_cannot_advance_past_serving(self):
        run = PipelineRun()
        for state in [
            PipelineState.VALIDATED,
            PipelineState.AUTHENTICATED,
            PipelineState.SYNCED,
            PipelineState.INDEXED,
            PipelineState.SERVING,
        ]:
            run.advance(state)
        with pytest.raises(RuntimeError, match="already serving"):
            run.advance(PipelineState.FAILED)
