import dataclasses
import sys

import pytest

from conftest import SLEEPING_MAIN, write_tree
from devpush.build import Build, BuildState, lifecycle, resolve_toolchain
from devpush.config import AppConfig, Settings, parse_app_config
from devpush.errors import CompileError, ConfigError, InvalidStateError, ProcessLaunchError


def make_build(tmp_path, files, config=None, **settings_kw):
    config = config or AppConfig(runtime="python")
    work_dir = write_tree(tmp_path / "work", files)
    settings = Settings(work_dir=work_dir, **settings_kw)
    return Build(
        id="build_test",
        work_dir=work_dir,
        config=config,
        toolchain=resolve_toolchain(config, settings),
    )


@pytest.fixture
def running(tmp_path):
    build = make_build(tmp_path, {"main.py": SLEEPING_MAIN})
    build.build()
    build.start()
    yield build
    if build.refresh() is BuildState.RUNNING:
        build.stop()


def test_stop_before_running_is_invalid(tmp_path):
    build = make_build(tmp_path, {"main.py": ""})
    with pytest.raises(InvalidStateError):
        build.stop()
    assert build.state is BuildState.CREATED


def test_start_before_build_is_invalid(tmp_path):
    build = make_build(tmp_path, {"main.py": ""})
    with pytest.raises(InvalidStateError):
        build.start()


def test_compile_failure_returns_to_created(tmp_path):
    build = make_build(tmp_path, {"main.py": "def (:\n"})
    with pytest.raises(CompileError) as excinfo:
        build.build()
    assert build.state is BuildState.CREATED
    assert "SyntaxError" in excinfo.value.output
    assert "SyntaxError" in build.describe().log


def test_missing_compiler_is_compile_error(tmp_path):
    build = make_build(
        tmp_path, {"main.py": ""}, build_command="/nonexistent/devpush-compiler"
    )
    with pytest.raises(CompileError):
        build.build()
    assert build.state is BuildState.CREATED


def test_no_build_step_is_built_immediately(tmp_path):
    build = make_build(tmp_path, {"main.py": ""})
    build.toolchain = dataclasses.replace(build.toolchain, build_command=())
    build.build()
    assert build.state is BuildState.BUILT


def test_start_and_stop(running):
    assert running.state is BuildState.RUNNING
    host, _, port = running.listen_address.partition(":")
    assert host == "127.0.0.1" and int(port) > 0
    running.stop()
    assert running.state is BuildState.STOPPED
    assert running.process.returncode is not None
    with pytest.raises(InvalidStateError):
        running.stop()


def test_rebuild_from_running_is_invalid(running):
    with pytest.raises(InvalidStateError):
        running.build()


def test_exit_is_detected_lazily(tmp_path):
    build = make_build(tmp_path, {"main.py": "import sys\nsys.exit(3)\n"})
    build.build()
    build.start()
    build.process.wait(timeout=30)
    assert build.state is BuildState.RUNNING
    assert build.refresh() is BuildState.STOPPED
    assert "Process exited with status 3." in build.describe().log


def test_launch_failure_stays_built(tmp_path):
    config = AppConfig(runtime="python", entrypoint="/nonexistent/devpush-app")
    build = make_build(tmp_path, {"main.py": ""}, config=config)
    build.build()
    with pytest.raises(ProcessLaunchError):
        build.start()
    assert build.state is BuildState.BUILT


def test_run_environment(tmp_path):
    main = (
        "import os\n"
        "with open('env.txt', 'w') as f:\n"
        "    f.write('\\n'.join([os.environ['PORT'], os.environ['GREETING'], os.environ['PYTHONPATH']]))\n"
    )
    config = parse_app_config("runtime: python\nenv_variables:\n  GREETING: hi\n")
    build = make_build(tmp_path, {"main.py": main}, config=config)
    build.build()
    build.start()
    build.process.wait(timeout=30)
    port, greeting, pythonpath = (build.work_dir / "env.txt").read_text().split("\n")
    assert build.listen_address.endswith(":" + port)
    assert greeting == "hi"
    assert pythonpath == str(build.work_dir / "lib")


def test_resolve_toolchain(tmp_path):
    settings = Settings(work_dir=tmp_path)
    go = resolve_toolchain(AppConfig(runtime="go"), settings)
    assert go.build_command[:2] == ("go", "build") and go.artifacts == ("a.out",)
    py = resolve_toolchain(AppConfig(runtime="python3", entrypoint="python -m app"), settings)
    assert py.run_command == ("python", "-m", "app")
    assert py.build_command[0] == sys.executable
    forced = resolve_toolchain(
        AppConfig(runtime="go"), Settings(work_dir=tmp_path, run_command="./server --fast")
    )
    assert forced.run_command == ("./server", "--fast")
    with pytest.raises(ConfigError):
        resolve_toolchain(AppConfig(runtime="cobol"), settings)


def test_parse_app_config():
    config = parse_app_config("runtime: go\nvm: true\nenv_variables:\n  N: 3\n  ON: true\n")
    assert config.runtime == "go" and config.vm is True
    assert config.env_variables == {"N": "3", "ON": "true"}
    for bad in ("runtime: [", "- a\n- b\n", "runtime: go\nenv_variables: 3\n"):
        with pytest.raises(ConfigError):
            parse_app_config(bad)


def test_stop_running_without_process(tmp_path):
    build = make_build(tmp_path, {"main.py": ""})
    build.state = BuildState.RUNNING
    build.process = None
    with pytest.raises(InvalidStateError, match="process not running"):
        build.stop()
    assert build.state is BuildState.STOPPED


def test_port_pick_failure_is_launch_error(tmp_path, monkeypatch):
    def no_ports(host="127.0.0.1"):
        raise OSError("no ports left")

    monkeypatch.setattr(lifecycle, "pick_free_port", no_ports)
    build = make_build(tmp_path, {"main.py": ""})
    build.build()
    with pytest.raises(ProcessLaunchError, match="no ports left"):
        build.start()
    assert build.state is BuildState.BUILT
    assert build.process is None
