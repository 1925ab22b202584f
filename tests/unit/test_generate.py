"""Unit tests for DevTools Recorder to pytest-playwright conversion."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from conftest import write_json
from exceptions import BrittleSelectorError, NoValidRecordingsError, RecordingValidationError
from recorder.generate import (
    EXPORT_HINT,
    HAR_MESSAGE,
    RecordingGenerator,
    list_recording_files,
    load_recording,
    main,
    parse_recording,
    render_recording,
    sanitize_filename,
    script_name,
)
from recorder.schemas import AssertionsFile, OverridesFile, Recording

BRITTLE_RECORDING = {
    "title": "Brittle",
    "steps": [{"type": "click", "selectors": [["ul > li:nth-child(3) > a"]]}],
}


def write_yaml(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestNaming:
    def test_sanitize_filename(self):
        assert sanitize_filename("Sign In Flow") == "sign-in-flow"
        assert sanitize_filename("  Checkout: step #2!  ") == "checkout-step-2"
        assert len(sanitize_filename("x" * 200)) == 80

    def test_script_name(self):
        assert script_name("sign-in-flow") == "test_sign_in_flow"
        assert script_name("") == "test_recording"


class TestParseRecording:
    def test_valid_recording(self, sample_recording: Dict[str, Any]):
        recording = parse_recording(sample_recording)
        assert recording.title == "Sign In Flow"
        assert recording.step_types == ["setViewport", "navigate", "change", "click"]

    def test_har_export_is_named(self):
        with pytest.raises(RecordingValidationError) as exc_info:
            parse_recording({"log": {"version": "1.2", "entries": []}})
        assert exc_info.value.message == HAR_MESSAGE

    def test_missing_title(self):
        with pytest.raises(RecordingValidationError, match="schema mismatch"):
            parse_recording({"steps": []})

    def test_known_step_with_wrong_shape(self):
        with pytest.raises(RecordingValidationError, match=r"steps\.0"):
            parse_recording({"title": "Bad", "steps": [{"type": "click"}]})

    def test_unknown_step_types_are_accepted(self):
        recording = parse_recording({"title": "Future", "steps": [{"type": "launchRocket"}]})
        assert recording.step_types == ["launchRocket"]

    def test_invalid_json_file(self, temp_dir: Path):
        path = temp_dir / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(RecordingValidationError, match="invalid JSON"):
            load_recording(path)


class TestRenderRecording:
    def test_sample_recording(self, sample_recording: Dict[str, Any]):
        recording = Recording.model_validate(sample_recording)
        rendered = render_recording(recording, "recordings/sign-in.json")
        source = rendered.source

        assert source.startswith("# DO NOT EDIT - generated by qacr-generate from recordings/sign-in.json\n")
        assert "import re" not in source
        assert "from playwright.sync_api import Page, expect" in source
        assert "def test_sign_in_flow(page: Page) -> None:" in source
        assert '    "Sign In Flow"' in source
        assert '    page.set_viewport_size({"width": 1280, "height": 800})' in source
        assert '    page.goto("https://example.com/login")' in source
        assert '    locator = page.get_by_label("Email")' in source
        assert '    locator.fill("user@example.com")' in source
        assert '    locator = page.get_by_role("button", name="Sign in")' in source
        assert "    expect(locator).to_be_visible()" in source
        assert "    locator.click()" in source
        assert "    # step 3: click" in source
        assert rendered.brittle_selectors == []

    def test_aria_role_beats_css_alternative(self):
        recording = Recording.model_validate(
            {
                "title": "Login",
                "steps": [
                    {"type": "navigate", "url": "https://example.com"},
                    {"type": "click", "selectors": [['aria/Login[role="button"]'], ["css/div>span.btn"]]},
                ],
            }
        )
        source = render_recording(recording, "login.json").source
        assert 'locator = page.get_by_role("button", name="Login")' in source
        assert "span.btn" not in source

    def test_override_replaces_scored_selector(self):
        recording = Recording.model_validate(BRITTLE_RECORDING)
        overrides = OverridesFile.model_validate(
            {"overrides": [{"step": 0, "action": "click", "locator": {"kind": "css", "selector": ".btn"}}]}
        )
        rendered = render_recording(recording, "brittle.json", overrides)
        assert '    locator = page.locator(".btn")' in rendered.source
        assert "nth-child" not in rendered.source
        assert rendered.brittle_selectors == []

    def test_brittle_selector_is_reported(self):
        rendered = render_recording(Recording.model_validate(BRITTLE_RECORDING), "brittle.json")
        assert len(rendered.brittle_selectors) == 1
        report = rendered.brittle_selectors[0]
        assert report.step == 0
        assert report.slug == "brittle"
        assert report.describe().startswith("Brittle step 0 (click): CSS (nth-child/nth-of-type)")

    def test_assertions_render_after_their_step(self, sample_recording: Dict[str, Any]):
        assertions = AssertionsFile.model_validate(
            {
                "assertions": [
                    {"afterStep": 3, "expect": [{"type": "url_contains", "value": "/dashboard"}]},
                    {
                        "afterStep": 3,
                        "expect": [{"type": "role_visible", "value": "Welcome", "role": "heading", "name": "Welcome"}],
                    },
                ]
            }
        )
        rendered = render_recording(Recording.model_validate(sample_recording), "x.json", assertions=assertions)
        source = rendered.source
        assert "\nimport re\n" in source
        assert '    expect(page).to_have_url(re.compile(re.escape("/dashboard")))' in source
        assert '    expect(page.get_by_role("heading", name="Welcome")).to_be_visible()' in source
        assert source.index("# assert after step 3") > source.index("locator.click()")

    def test_visible_text_assertion(self, sample_recording: Dict[str, Any]):
        assertions = AssertionsFile.model_validate(
            {"assertions": [{"afterStep": 1, "expect": [{"type": "visible_text", "value": "Welcome back"}]}]}
        )
        rendered = render_recording(Recording.model_validate(sample_recording), "x.json", assertions=assertions)
        assert 'expect(page.get_by_text("Welcome back", exact=False).first).to_be_visible()' in rendered.source
        assert "import re" not in rendered.source

    def test_step_variants(self):
        recording = Recording.model_validate(
            {
                "title": "Variants",
                "steps": [
                    {"type": "click", "button": "secondary", "selectors": [["#menu"]]},
                    {"type": "doubleClick", "selectors": [["#row"]]},
                    {"type": "keyDown", "key": "Enter"},
                    {"type": "keyUp", "key": "Enter"},
                    {"type": "scroll", "x": 0, "y": 400},
                    {"type": "hover", "selectors": [["#tip"]]},
                    {"type": "waitForElement", "selectors": [["#spinner"]], "visible": False},
                    {"type": "waitForExpression", "expression": "window.ready"},
                    {"type": "customStep", "name": "seed", "parameters": {}},
                    {"type": "launchRocket"},
                ],
            }
        )
        source = render_recording(recording, "v.json").source
        assert 'locator.click(button="right")' in source
        assert "locator.dblclick()" in source
        assert 'page.keyboard.down("Enter")' in source
        assert 'page.keyboard.up("Enter")' in source
        assert "page.mouse.wheel(0, 400)" in source
        assert "locator.hover()" in source
        assert 'expect(page.locator("#spinner")).to_be_hidden()' in source
        assert 'page.wait_for_function("window.ready")' in source
        assert "# Custom step: seed" in source
        assert "# Unsupported step type: launchRocket" in source

    def test_comment_only_body_gets_pass(self):
        recording = Recording.model_validate({"title": "Empty", "steps": [{"type": "customStep", "name": "noop"}]})
        source = render_recording(recording, "e.json").source
        assert source.rstrip().endswith("    pass")

    def test_nested_frame_selector_is_reported(self):
        recording = Recording.model_validate(
            {"title": "Framed", "steps": [{"type": "click", "selectors": [["#frame", "#inner"]]}]}
        )
        rendered = render_recording(recording, "f.json")
        assert len(rendered.frame_warnings) == 1
        assert rendered.frame_warnings[0].selector.frame_depth == 2


class TestRecordingGenerator:
    def test_no_recordings(self, recordings_config):
        result = RecordingGenerator(recordings_config).generate()
        assert result.files_written == []
        assert result.invalid_recordings == []

    def test_writes_script_per_recording(self, recordings_config, sample_recording):
        write_json(recordings_config.recordings_dir / "sign-in.json", sample_recording)
        result = RecordingGenerator(recordings_config).generate()

        target = recordings_config.output_dir / "test_sign_in_flow.py"
        assert result.files_written == [target]
        assert 'page.get_by_role("button", name="Sign in")' in target.read_text(encoding="utf-8")

    def test_generation_is_deterministic(self, recordings_config, sample_recording):
        write_json(recordings_config.recordings_dir / "sign-in.json", sample_recording)
        target = recordings_config.output_dir / "test_sign_in_flow.py"
        RecordingGenerator(recordings_config).generate()
        first = target.read_text(encoding="utf-8")
        RecordingGenerator(recordings_config).generate()
        assert target.read_text(encoding="utf-8") == first

    def test_sidecar_directories_are_not_recordings(self, recordings_config, sample_recording):
        write_json(recordings_config.recordings_dir / "sign-in.json", sample_recording)
        write_json(recordings_config.overrides_dir / "stray.json", {"overrides": []})
        assert list_recording_files(recordings_config) == [recordings_config.recordings_dir / "sign-in.json"]

    def test_invalid_files_are_skipped(self, recordings_config, sample_recording):
        write_json(recordings_config.recordings_dir / "a-sign-in.json", sample_recording)
        write_json(recordings_config.recordings_dir / "network.json", {"log": {"entries": []}})
        result = RecordingGenerator(recordings_config).generate()
        assert len(result.files_written) == 1
        assert len(result.invalid_recordings) == 1
        assert result.invalid_recordings[0].reason == HAR_MESSAGE

    def test_only_invalid_recordings_raises(self, recordings_config):
        write_json(recordings_config.recordings_dir / "network.json", {"log": {"entries": []}})
        with pytest.raises(NoValidRecordingsError) as exc_info:
            RecordingGenerator(recordings_config).generate()
        message = exc_info.value.message
        assert "Rejected 1 file:" in message
        assert HAR_MESSAGE in message
        assert message.endswith(EXPORT_HINT)

    def test_override_action_mismatch_rejects_recording(self, recordings_config, sample_recording):
        write_json(recordings_config.recordings_dir / "sign-in.json", sample_recording)
        write_yaml(
            recordings_config.overrides_dir / "sign-in-flow.yaml",
            {"overrides": [{"step": 3, "action": "change", "locator": {"kind": "label", "text": "Email"}}]},
        )
        with pytest.raises(NoValidRecordingsError, match="action mismatch"):
            RecordingGenerator(recordings_config).generate()

    def test_override_out_of_range(self, recordings_config, sample_recording):
        write_json(recordings_config.recordings_dir / "sign-in.json", sample_recording)
        write_yaml(
            recordings_config.overrides_dir / "sign-in-flow.yaml",
            {"overrides": [{"step": 99, "action": "click", "locator": {"kind": "text", "text": "Go"}}]},
        )
        with pytest.raises(NoValidRecordingsError, match="out of range"):
            RecordingGenerator(recordings_config).generate()

    def test_assertion_sidecar(self, recordings_config, sample_recording):
        write_json(recordings_config.recordings_dir / "sign-in.json", sample_recording)
        write_yaml(
            recordings_config.assertions_dir / "sign-in-flow.yml",
            {"assertions": [{"afterStep": 3, "expect": [{"type": "url_contains", "value": "/home"}]}]},
        )
        RecordingGenerator(recordings_config).generate()
        source = (recordings_config.output_dir / "test_sign_in_flow.py").read_text(encoding="utf-8")
        assert "import re" in source
        assert 're.escape("/home")' in source

    def test_brittle_selectors_warn_without_strict(self, recordings_config):
        write_json(recordings_config.recordings_dir / "brittle.json", BRITTLE_RECORDING)
        result = RecordingGenerator(recordings_config).generate()
        assert len(result.brittle_selectors) == 1
        assert (recordings_config.output_dir / "test_brittle.py").exists()

    def test_strict_mode_fails_on_brittle_selector(self, recordings_config):
        write_json(recordings_config.recordings_dir / "brittle.json", BRITTLE_RECORDING)
        strict = recordings_config.model_copy(update={"strict_selectors": True})
        with pytest.raises(BrittleSelectorError, match="Strict selector mode is enabled") as exc_info:
            RecordingGenerator(strict).generate()
        assert exc_info.value.count == 1

    def test_strict_mode_passes_with_override(self, recordings_config):
        write_json(recordings_config.recordings_dir / "brittle.json", BRITTLE_RECORDING)
        write_yaml(
            recordings_config.overrides_dir / "brittle.yaml",
            {"overrides": [{"step": 0, "action": "click", "locator": {"kind": "css", "selector": ".btn"}}]},
        )
        strict = recordings_config.model_copy(update={"strict_selectors": True})
        result = RecordingGenerator(strict).generate()
        assert result.brittle_selectors == []
        source = (recordings_config.output_dir / "test_brittle.py").read_text(encoding="utf-8")
        assert 'page.locator(".btn")' in source


class TestMain:
    @pytest.fixture
    def workdir(self, recordings_config, temp_dir: Path, monkeypatch) -> Path:
        monkeypatch.chdir(temp_dir)
        return temp_dir

    def test_success(self, workdir: Path, sample_recording):
        write_json(workdir / "recordings" / "sign-in.json", sample_recording)
        assert main(["--recordings-dir", "recordings", "--output-dir", "generated"]) == 0
        assert (workdir / "generated" / "test_sign_in_flow.py").exists()

    def test_no_valid_recordings(self, workdir: Path):
        write_json(workdir / "recordings" / "network.json", {"log": {"entries": []}})
        assert main(["--recordings-dir", "recordings", "--output-dir", "generated"]) == 1

    def test_strict_flag(self, workdir: Path):
        write_json(workdir / "recordings" / "brittle.json", BRITTLE_RECORDING)
        args = ["--recordings-dir", "recordings", "--output-dir", "generated"]
        assert main(args) == 0
        assert main(args + ["--strict"]) == 1

    def test_missing_config_file(self, workdir: Path):
        assert main(["--config", "missing.yaml"]) == 1

    def test_custom_recordings_dir_uses_its_overrides(self, workdir: Path):
        write_json(workdir / "other" / "brittle.json", BRITTLE_RECORDING)
        write_yaml(
            workdir / "other" / "overrides" / "brittle.yaml",
            {"overrides": [{"step": 0, "action": "click", "locator": {"kind": "css", "selector": ".btn"}}]},
        )
        assert main(["--recordings-dir", "other", "--output-dir", "generated", "--strict"]) == 0
        source = (workdir / "generated" / "test_brittle.py").read_text(encoding="utf-8")
        assert 'page.locator(".btn")' in source
        assert "nth-child" not in source
