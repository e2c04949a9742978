import json

from click.testing import CliRunner
from openpyxl import load_workbook

from bank_cash_recon import __version__
from bank_cash_recon.cli import main
from bank_cash_recon.config import load_config
from tests.conftest import _write_rows


def _cash_file(tmp_path):
    return _write_rows(
        tmp_path / "caixa.csv",
        [
            "c1;15/01/2024;PIX;123.456.789-01;150,00;Venda PIX",
            "c2;20/01/2024;DINHEIRO;;12,00;Venda",
        ],
    )


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestSearchCommands:
    def test_search(self, rows_file):
        result = CliRunner().invoke(main, ["search", "150,00", str(rows_file)])
        assert result.exit_code == 0, result.output
        assert "matched" in result.output

    def test_search_invalid_value(self, rows_file):
        result = CliRunner().invoke(main, ["search", "abc", str(rows_file)])
        assert result.exit_code == 0, result.output
        assert "invalid_input" in result.output

    def test_fuzzy_search(self, rows_file):
        result = CliRunner().invoke(main, ["fuzzy-search", "150", str(rows_file)])
        assert result.exit_code == 0, result.output
        assert "Exact matches" in result.output

    def test_parse_rows(self, rows_file):
        result = CliRunner().invoke(main, ["parse-rows", str(rows_file)])
        assert result.exit_code == 0, result.output
        assert "Total records: 3" in result.output

    def test_parse_rows_bad_file(self, tmp_path):
        path = tmp_path / "rows.csv"
        path.write_text("Foo;Bar\n1;2\n", encoding="utf-8")

        result = CliRunner().invoke(main, ["parse-rows", str(path)])

        assert result.exit_code == 1
        assert "Error parsing file" in result.output


def test_confer_exports_audit_trail(rows_file, tmp_path):
    output = tmp_path / "conference.xlsx"

    result = CliRunner().invoke(
        main, ["confer", str(rows_file), "150,00", "150,00", "999", "-o", str(output)]
    )

    assert result.exit_code == 0, result.output
    outcomes = [
        row[1] for row in load_workbook(output)["Audit Trail"].iter_rows(min_row=5, values_only=True)
    ]
    assert outcomes == ["matched", "already_conferred", "not_found"]


class TestReconcileCommand:
    """Tests for the reconcile command."""

    def test_json_export(self, rows_file, tmp_path):
        output = tmp_path / "report.json"

        result = CliRunner().invoke(
            main,
            [
                "reconcile",
                "-s", f"bank={rows_file}",
                "-s", f"caixa={_cash_file(tmp_path)}",
                "-t", "bank=bank_statement",
                "-t", "caixa=cash_register",
                "--json", str(output),
            ],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["summary"]["total_records"] == 5
        assert data["summary"]["matches_by_type"] == {"exact": 1}
        assert data["source_record_counts"] == {"bank": 3, "caixa": 2}

    def test_excel_export(self, rows_file, tmp_path):
        output = tmp_path / "report.xlsx"

        result = CliRunner().invoke(
            main,
            ["reconcile", "-s", f"bank={rows_file}", "-s", f"caixa={_cash_file(tmp_path)}", "-o", str(output)],
        )

        assert result.exit_code == 0, result.output
        assert load_workbook(output).sheetnames[0] == "Summary"

    def test_dry_run_writes_nothing(self, rows_file, tmp_path):
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path) as cwd:
            result = runner.invoke(
                main,
                ["reconcile", "-s", f"bank={rows_file}", "-s", f"caixa={_cash_file(tmp_path)}", "--dry-run"],
            )
            assert result.exit_code == 0, result.output
            assert "Dry run" in result.output
            assert not list(tmp_path.joinpath(cwd).glob("*.xlsx"))

    def test_overrides(self, rows_file, tmp_path):
        output = tmp_path / "report.json"

        result = CliRunner().invoke(
            main,
            [
                "reconcile",
                "-s", f"bank={rows_file}",
                "-s", f"caixa={_cash_file(tmp_path)}",
                "--bucket-width", "1000",
                "--date-tolerance", "10",
                "--workers", "2",
                "--json", str(output),
            ],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["summary"]["matches_by_type"]["exact"] == 1
        assert data["summary"]["total_records"] == 5

    def test_bad_source_spec(self, rows_file):
        result = CliRunner().invoke(main, ["reconcile", "-s", str(rows_file)])
        assert result.exit_code == 2
        assert "ID=VALUE" in result.output

    def test_out_of_range_override(self, rows_file):
        result = CliRunner().invoke(
            main, ["reconcile", "-s", f"bank={rows_file}", "--value-tolerance", "2", "--dry-run"]
        )
        assert result.exit_code == 2
        assert "Invalid override" in result.output

    def test_unknown_source_type(self, rows_file):
        result = CliRunner().invoke(
            main, ["reconcile", "-s", f"bank={rows_file}", "-t", "bank=spreadsheet", "--dry-run"]
        )
        assert result.exit_code == 2

    def test_type_for_unknown_source(self, rows_file):
        result = CliRunner().invoke(
            main, ["reconcile", "-s", f"bank={rows_file}", "-t", "pos=pos_system", "--dry-run"]
        )
        assert result.exit_code == 2


def test_init_config(tmp_path):
    output = tmp_path / "config.yaml"

    result = CliRunner().invoke(main, ["init-config", "-o", str(output)])

    assert result.exit_code == 0, result.output
    assert load_config(output).reconciliation.value_bucket_width == 10
