import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

def _import_in(cwd: Path, code: str) -> str:
    env = {k: v for k, v in os.environ.items() if not k.startswith("WINDFLEET_")}
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), env.get("PYTHONPATH")]))
    out = subprocess.run(
        [sys.executable, "-c", code],
        cwd=cwd, env=env, capture_output=True, text=True, check=True,
    )
    return out.stdout.strip()

def test_dotenv_reaches_modules_configured_at_import(tmp_path):
    (tmp_path / ".env").write_text(
        "WINDFLEET_BASE_URL=https://from-dotenv.example/api\n"
        "WINDFLEET_TIMEZONE=America/New_York\n"
    )
    code = (
        "import windfleet.main\n"
        "from windfleet import fleet, telemetry\n"
        "print(telemetry.BASE_URL, fleet.FLEET_TIMEZONE)\n"
    )
    assert _import_in(tmp_path, code) == "https://from-dotenv.example/api America/New_York"

def test_environment_wins_over_dotenv(tmp_path):
    (tmp_path / ".env").write_text("WINDFLEET_API_KEY=from-file\n")
    env_code = (
        "import os\n"
        "os.environ['WINDFLEET_API_KEY'] = 'from-env'\n"
        "from windfleet import telemetry\n"
        "print(telemetry.API_KEY)\n"
    )
    assert _import_in(tmp_path, env_code) == "from-env"
