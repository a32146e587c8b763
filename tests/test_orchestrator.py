from __future__ import annotations

from ad_inventory.collectors import default_collectors
from ad_inventory.normalize.schema import SECTION_KEYS, SectionStatus, section_spec
from ad_inventory.orchestrator import run_collectors, run_section, summarize_sections


class _Exploding:
    spec = section_spec("sites")

    def collect(self, ctx):
        raise KeyError("siteObject")


def test_full_snapshot_run_produces_thirteen_ok_sections(make_ctx, snapshot_data) -> None:
    ctx = make_ctx(snapshot_data)
    doc = run_collectors(default_collectors(), ctx, run_timestamp="20261018T120000Z")
    assert tuple(s.key for s in doc.sections) == SECTION_KEYS
    assert [s.status for s in doc.sections] == [SectionStatus.OK] * 13
    assert doc.run_timestamp == "20261018T120000Z"
    assert len(doc.section("tier0").records) == 4
    assert len(doc.section("tier2").records) == 1
    assert len(doc.datasets()) == 11


def test_failure_is_isolated_to_its_section(make_ctx, snapshot_data) -> None:
    collectors = default_collectors()
    collectors[3] = _Exploding()
    doc = run_collectors(collectors, make_ctx(snapshot_data))
    sites = doc.section("sites")
    assert sites.status == SectionStatus.FAILED
    assert sites.note == "KeyError: 'siteObject'"
    others = [s for s in doc.sections if s.key != "sites"]
    assert all(s.status == SectionStatus.OK for s in others)


def test_run_section_never_raises(make_ctx) -> None:
    section = run_section(_Exploding(), make_ctx({}))
    assert section.status == SectionStatus.FAILED


def test_completed_sections_are_published_as_facts(make_ctx, snapshot_data) -> None:
    ctx = make_ctx(snapshot_data)
    run_collectors(default_collectors(), ctx)
    assert len(ctx.facts["domain_controllers"]) == 2
    assert set(ctx.facts) == set(SECTION_KEYS)


def test_zero_domain_controllers(make_ctx, snapshot_data) -> None:
    data = {"forest": snapshot_data["forest"], "domain_controllers": []}
    doc = run_collectors(default_collectors(), make_ctx(data))
    assert doc.sections[0].status == SectionStatus.OK
    for section in doc.sections[1:]:
        assert section.status in (SectionStatus.EMPTY, SectionStatus.FAILED), section.key
        assert section.note
    assert doc.section("replication").status == SectionStatus.EMPTY
    assert doc.section("dns").status == SectionStatus.EMPTY


def test_dc_failure_cascades_as_failures_not_crashes(make_ctx, snapshot_data) -> None:
    snapshot_data["domain_controllers"] = {"error": "referral"}
    doc = run_collectors(default_collectors(), make_ctx(snapshot_data))
    assert doc.section("domain_controllers").status == SectionStatus.FAILED
    assert doc.section("replication").note == "domain controller list unavailable"
    assert doc.section("dns").status == SectionStatus.FAILED
    assert doc.section("sites").status == SectionStatus.OK
    assert doc.section("fsmo").status == SectionStatus.OK


def test_dhcp_without_servers_fails_with_explanation(make_ctx, snapshot_data) -> None:
    snapshot_data["dhcp_servers"] = []
    doc = run_collectors(default_collectors(), make_ctx(snapshot_data))
    assert doc.section("dhcp").status == SectionStatus.FAILED
    assert doc.section("dhcp").note == "No authorized DHCP servers found"


def test_on_section_callback_and_summary(make_ctx, snapshot_data) -> None:
    seen = []
    doc = run_collectors(default_collectors(), make_ctx(snapshot_data), on_section=lambda s: seen.append(s.key))
    assert tuple(seen) == SECTION_KEYS
    summary = summarize_sections(doc)
    assert summary[0]["key"] == "forest"
    assert summary[6]["records"] == 4
