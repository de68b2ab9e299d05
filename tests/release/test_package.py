"""Tests for chart packaging."""

from pathlib import Path

from chart_release.chart import ChartDir
from chart_release.executor import Executor
from chart_release.manifest import ChartType, Package
from chart_release.release import Packager, collect_packages

from ..fakes import FakeHelm, write_chart


async def test_package_all(
    root: Path, packager: Packager, helm: FakeHelm, executor: Executor
) -> None:
    """Test charts are packaged into one directory per chart type."""
    write_chart(root, "application/ubuntu", version="1.0.3")
    write_chart(root, "application/broken")
    write_chart(root, "library/common", version="0.2.0")
    helm.fail.add("broken")
    ubuntu = ChartDir(type=ChartType.APPLICATION, path="application/ubuntu")
    broken = ChartDir(type=ChartType.APPLICATION, path="application/broken")
    common = ChartDir(type=ChartType.LIBRARY, path="library/common")

    results = await packager.package_all(
        {ChartType.APPLICATION: [ubuntu, broken], ChartType.LIBRARY: [common]}
    )

    assert [(result.chart_dir, result.success) for result in results] == [
        (ubuntu, True),
        (broken, False),
        (common, True),
    ]
    assert [failure.operation for failure in executor.failures] == [
        "package 'application/broken' chart"
    ]
    packages_dir = root / ".cr-release-packages"
    assert collect_packages(results) == [
        Package(
            source=packages_dir / "application/ubuntu-1.0.3.tgz",
            type=ChartType.APPLICATION,
            name="ubuntu",
            version="1.0.3",
        ),
        Package(
            source=packages_dir / "library/common-0.2.0.tgz",
            type=ChartType.LIBRARY,
            name="common",
            version="0.2.0",
        ),
    ]
    assert helm.dependency_updates == [root / "application/ubuntu", root / "library/common"]



async def test_stale_archives_ignored(root: Path, packager: Packager) -> None:
    """Test archives left by an earlier run are not collected."""
    destination = packager.destination(ChartType.APPLICATION)
    destination.mkdir(parents=True)
    (destination / "ubuntu-1.9.0.tgz").write_bytes(b"")
    (destination / "index.yaml").write_text("entries: {}\n")
    write_chart(root, "application/ubuntu", version="1.10.0")

    results = await packager.package_all(
        {ChartType.APPLICATION: [ChartDir(type=ChartType.APPLICATION, path="application/ubuntu")]}
    )

    (package,) = collect_packages(results)
    assert package.source == destination / "ubuntu-1.10.0.tgz"
    assert package.version == "1.10.0"


async def test_failed_result_has_no_package(
    root: Path, packager: Packager, helm: FakeHelm
) -> None:
    """Test a chart that fails to package contributes no archive."""
    write_chart(root, "library/my-chart", version="1.0.0")
    helm.fail.add("my-chart")

    (result,) = await packager.package_all(
        {ChartType.LIBRARY: [ChartDir(type=ChartType.LIBRARY, path="library/my-chart")]}
    )

    assert not result.success
    assert result.package is None
    assert collect_packages([result]) == []
