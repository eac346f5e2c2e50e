from datetime import datetime
from pathlib import Path

from nudge.agent.system_prompts import ROLE_PREAMBLE, build_system_prompt
from nudge.services.vault_service import DEFAULT_CONFIG, VaultService


def test_prompt_includes_config_clock_and_vault(vault: Path):
    (vault / "config.md").write_text("# Config\n\n## Mantra\n\nOne thing at a time.\n", encoding="utf-8")
    prompt = build_system_prompt(str(vault), now=datetime(2026, 2, 17, 15, 5))

    assert prompt.startswith(ROLE_PREAMBLE.rstrip("\n"))
    assert "## User Config\n\n# Config\n\n## Mantra\n\nOne thing at a time." in prompt
    assert "## Current Date & Time\n\nTuesday, February 17, 2026 at 3:05 PM" in prompt
    assert prompt.endswith(f"Vault location: {vault}")


def test_prompt_without_config(vault: Path):
    prompt = build_system_prompt(str(vault), base_prompt="Be brief.", now=datetime(2026, 2, 17, 0, 30))
    assert prompt.startswith("Be brief.\n\n---\n\n## User Config\n\n")
    assert "12:30 AM" in prompt


def test_initialize_creates_defaults_without_overwriting(vault: Path):
    (vault / "tasks.md").write_text("# My tasks\n", encoding="utf-8")
    service = VaultService(vault)

    created = service.initialize()

    assert created == ["config.md"]
    assert (vault / "tasks.md").read_text(encoding="utf-8") == "# My tasks\n"
    assert (vault / "config.md").read_text(encoding="utf-8") == DEFAULT_CONFIG
    assert (vault / "ideas").is_dir()
    assert (vault / "daily").is_dir()
    assert service.initialize() == []
