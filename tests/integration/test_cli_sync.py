from click.testing import CliRunner

from recordshop.cli.sync_inventory import sync_inventory
from recordshop.core.enums import SyncMode
from recordshop.core.exceptions import InventoryFetchError, ReconciliationInProgressError
from recordshop.schemas.sync import ReconciliationReport


def test_cli_delta_sync_prints_report(mocker):
    run_sync = mocker.patch(
        "recordshop.cli.sync_inventory.run_sync",
        mocker.AsyncMock(return_value=ReconciliationReport(
            mode=SyncMode.DELTA, created=3, updated=1, deleted=2, total_remote=40
        )),
    )

    result = CliRunner().invoke(sync_inventory, ["--mode", "delta"])

    assert result.exit_code == 0, result.output
    run_sync.assert_awaited_once_with(SyncMode.DELTA)
    assert "Delta sync completed!" in result.output
    assert "Created: 3" in result.output
    assert "Deleted: 2" in result.output


def test_cli_initial_sync_asks_for_confirmation(mocker):
    run_sync = mocker.patch("recordshop.cli.sync_inventory.run_sync", mocker.AsyncMock())

    result = CliRunner().invoke(sync_inventory, ["--mode", "initial"], input="n\n")

    assert result.exit_code == 1
    run_sync.assert_not_called()


def test_cli_initial_sync_with_yes(mocker):
    run_sync = mocker.patch(
        "recordshop.cli.sync_inventory.run_sync",
        mocker.AsyncMock(return_value=ReconciliationReport(mode=SyncMode.INITIAL, created=10)),
    )

    result = CliRunner().invoke(sync_inventory, ["--mode", "initial", "--yes"])

    assert result.exit_code == 0, result.output
    run_sync.assert_awaited_once_with(SyncMode.INITIAL)


def test_cli_partial_run_warns(mocker):
    mocker.patch(
        "recordshop.cli.sync_inventory.run_sync",
        mocker.AsyncMock(return_value=ReconciliationReport(mode=SyncMode.DELTA, partial=True, pages_fetched=1)),
    )

    result = CliRunner().invoke(sync_inventory, ["--mode", "delta"])

    assert result.exit_code == 0
    assert "incomplete" in result.output


def test_cli_run_in_progress_exits_2(mocker):
    mocker.patch(
        "recordshop.cli.sync_inventory.run_sync",
        mocker.AsyncMock(side_effect=ReconciliationInProgressError("A reconciliation run is already in progress")),
    )

    result = CliRunner().invoke(sync_inventory, ["--mode", "delta"])

    assert result.exit_code == 2
    assert "already in progress" in result.output


def test_cli_fetch_failure_exits_1(mocker):
    mocker.patch(
        "recordshop.cli.sync_inventory.run_sync",
        mocker.AsyncMock(side_effect=InventoryFetchError("Failed to fetch first inventory page")),
    )

    result = CliRunner().invoke(sync_inventory, ["--mode", "delta"])

    assert result.exit_code == 1
    assert "Sync failed" in result.output


def test_cli_rejects_unknown_mode():
    result = CliRunner().invoke(sync_inventory, ["--mode", "full"])

    assert result.exit_code == 2
