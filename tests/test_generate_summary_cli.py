import json
import pytest
from unittest.mock import patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from scripts.generate_summary import main


class TestGenerateSummaryCLI:
    """Test suite for the generate_summary command"""

    @pytest.fixture(autouse=True)
    def quiet_logging(self):
        with patch("scripts.generate_summary.setup_logging"):
            yield

    @pytest.fixture
    def data_file(self, tmp_path, iso_ago):
        path = tmp_path / "deals.json"
        path.write_text(json.dumps({
            "tenants": {
                "t1": {
                    "deals": [{"id": "d1", "name": "Acme Renewal", "stage": "proposal"}],
                    "ai_logs": [
                        {"id": "l1", "dealId": "d1", "action": "email_sent", "timestamp": iso_ago(5)}
                    ],
                    "emails": [
                        {"id": "e1", "dealId": "d1", "direction": "outbound",
                         "subject": "Re: Pricing", "timestamp": iso_ago(20)},
                        {"id": "e2", "dealId": "d1", "direction": "inbound",
                         "subject": "Re: Pricing", "timestamp": iso_ago(10)}
                    ],
                    "stage_history": {
                        "d1": [{"stage": "proposal", "timestamp": iso_ago(48)}]
                    }
                }
            }
        }))
        return str(path)

    def run(self, data_file, output, *extra):
        return main(["--data", data_file, "--tenant", "t1", "--deal", "d1",
                     "--now", "2024-05-10T12:00:00Z", "--output", str(output), *extra])

    def test_generates_summary(self, data_file, tmp_path):
        output = tmp_path / "summary.json"

        assert self.run(data_file, output) == 0

        ai_summary = json.loads(output.read_text())["aiSummary"]
        assert ai_summary["emailAnalysis"]["responseTime"] == "10.0 hours"
        assert ai_summary["dealProgress"]["timeInStage"] == "2.0 days"
        assert ai_summary["aiLogsAnalysis"]["keyInsights"] == ["Follow-up email sent"]
        assert ai_summary["lastUpdated"] == "2024-05-10T12:00:00Z"

    def test_no_persist_produces_same_summary(self, data_file, tmp_path):
        persisted = tmp_path / "persisted.json"
        analyzed = tmp_path / "analyzed.json"

        assert self.run(data_file, persisted) == 0
        assert self.run(data_file, analyzed, "--no-persist") == 0

        assert json.loads(persisted.read_text()) == json.loads(analyzed.read_text())

    def test_unknown_deal(self, data_file, tmp_path):
        exit_code = main(["--data", data_file, "--tenant", "t1", "--deal", "ghost",
                          "--output", str(tmp_path / "out.json")])

        assert exit_code == 1
        assert not (tmp_path / "out.json").exists()

    def test_invalid_now(self, data_file, tmp_path):
        assert self.run(data_file, tmp_path / "out.json", "--now", "yesterday-ish") == 2

    def test_missing_data_file(self, tmp_path):
        exit_code = main(["--data", str(tmp_path / "missing.json"), "--tenant", "t1", "--deal", "d1"])

        assert exit_code == 1
