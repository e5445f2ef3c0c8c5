"""
Tests for LinkValidator: skip, judge, collect-then-delete and cascade.
"""
import pytest

from app.core.errors import StoreError
from app.services.link_validator import LinkValidator

from conftest import add_content, add_link, add_node, links, make_oracle

VALID = '{"valid": true, "reason": "core skill"}'
INVALID = '{"valid": false, "reason": "needs geometry"}'


def _config_rows(store):
    rows = store.query("SELECT app_id, curriculum_node_id FROM app_config ORDER BY id")
    return [(r["app_id"], r["curriculum_node_id"]) for r in rows]


@pytest.fixture
def graph(store):
    """
    kopfrechnen content 1,2 and textaufgaben content 3, all linked to node 10;
    kopfrechnen content 1 also linked to node 11; dasdass content 4 -> node 12.
    """
    add_node(store, 10, "MA.1.A.1.a", "Addieren")
    add_node(store, 11, "MA.2.A.1.a", "Symmetrie erkennen", "Spiegelachsen zeichnen")
    add_node(store, 12, "D.5.E.1.a", "das/dass")
    add_content(store, 1, "kopfrechnen", {"q": "2+2"})
    add_content(store, 2, "kopfrechnen", {"q": "3+3"})
    add_content(store, 3, "textaufgaben", {"q": "Anna hat 3 Äpfel"})
    add_content(store, 4, "dasdass", {"q": "Ich weiss, das/dass ..."})
    for c, n in [(1, 10), (2, 10), (3, 10), (1, 11), (4, 12)]:
        add_link(store, c, n)
    store.execute("INSERT INTO app_config (app_id, curriculum_node_id, config) VALUES ('kopfrechnen', 11, '{}')")
    store.execute("INSERT INTO app_config (app_id, curriculum_node_id, config) VALUES ('kopfrechnen', 10, '{}')")
    store.execute("INSERT INTO app_config (app_id, curriculum_node_id, config) VALUES ('textaufgaben', 11, '{}')")
    return store


def _responder(verdicts):
    """verdicts: {(app_id, code): response}"""
    def answer(system, user):
        for (app_id, code), response in verdicts.items():
            if f'"{app_id}"' in user and code in user:
                return response
        raise AssertionError(f"unexpected prompt: {user[:80]}")
    return answer


class TestPairings:
    def test_distinct_pairings_through_joins(self, graph):
        add_link(graph, 999, 10)   # dangling content
        add_link(graph, 2, 999)    # dangling node
        oracle, _ = make_oracle([])
        pairings = LinkValidator(graph, oracle, None).fetch_pairings()
        assert [(p["app_id"], p["node_id"]) for p in pairings] == [
            ("dasdass", 12), ("kopfrechnen", 10), ("kopfrechnen", 11), ("textaufgaben", 10),
        ]


class TestValidation:
    def test_invalid_pairing_cascade(self, graph, config):
        oracle, _ = make_oracle(_responder({
            ("kopfrechnen", "MA.1.A.1.a"): VALID,
            ("kopfrechnen", "MA.2.A.1.a"): INVALID,
            ("textaufgaben", "MA.1.A.1.a"): VALID,
        }))
        report = LinkValidator(graph, oracle, config).run()

        assert (report.checked, report.valid, report.invalid, report.skipped) == (3, 2, 1, 1)
        assert report.deleted == 1
        assert links(graph) == {(1, 10), (2, 10), (3, 10), (4, 12)}
        # only the kopfrechnen/11 config row goes; textaufgaben/11 belongs to another pairing
        assert _config_rows(graph) == [("kopfrechnen", 10), ("textaufgaben", 11)]

    def test_cascade_removes_every_content_link_of_the_pairing(self, graph, config):
        oracle, _ = make_oracle(_responder({
            ("kopfrechnen", "MA.1.A.1.a"): INVALID,
            ("kopfrechnen", "MA.2.A.1.a"): VALID,
            ("textaufgaben", "MA.1.A.1.a"): VALID,
        }))
        LinkValidator(graph, oracle, config).run()
        assert links(graph) == {(3, 10), (1, 11), (4, 12)}

    def test_app_without_spec_is_skipped_not_invalid(self, graph, config):
        oracle, client = make_oracle(_responder({
            ("kopfrechnen", "MA.1.A.1.a"): VALID,
            ("kopfrechnen", "MA.2.A.1.a"): VALID,
            ("textaufgaben", "MA.1.A.1.a"): VALID,
        }))
        report = LinkValidator(graph, oracle, config).run()
        skipped = [p for p in report.pairings if p.status == "SKIPPED"]
        assert [(p.app_id, p.node_id) for p in skipped] == [("dasdass", 12)]
        assert all('"dasdass"' not in c["user"] for c in client.calls)
        assert (4, 12) in links(graph)

    def test_oracle_error_is_never_invalid(self, graph, config):
        oracle, _ = make_oracle(_responder({
            ("kopfrechnen", "MA.1.A.1.a"): "garbage",
            ("kopfrechnen", "MA.2.A.1.a"): INVALID,
            ("textaufgaben", "MA.1.A.1.a"): VALID,
        }))
        report = LinkValidator(graph, oracle, config).run()
        assert report.errors == 1
        status = {(p.app_id, p.node_id): p.status for p in report.pairings}
        assert status[("kopfrechnen", 10)] == "ERROR"
        assert (1, 10) in links(graph) and (2, 10) in links(graph)
        assert (1, 11) not in links(graph)

    def test_dry_run_deletes_nothing(self, graph, config):
        oracle, _ = make_oracle(_responder({
            ("kopfrechnen", "MA.1.A.1.a"): INVALID,
            ("kopfrechnen", "MA.2.A.1.a"): INVALID,
            ("textaufgaben", "MA.1.A.1.a"): INVALID,
        }))
        before = links(graph)
        report = LinkValidator(graph, oracle, config).run(dry_run=True)
        assert report.invalid == 3
        assert report.deleted == 0
        assert links(graph) == before


class TestCollectThenDelete:
    def test_nothing_deleted_before_all_pairings_judged(self, graph, config):
        seen_links = []

        def answer(system, user):
            seen_links.append(len(links(graph)))
            return INVALID

        oracle, _ = make_oracle(answer)
        LinkValidator(graph, oracle, config).run()
        assert seen_links == [5, 5, 5]
        assert links(graph) == {(4, 12)}

    def test_failed_deletion_does_not_stop_others(self, graph, config, monkeypatch):
        oracle, _ = make_oracle(lambda s, u: INVALID)
        validator = LinkValidator(graph, oracle, config)
        real_delete = validator.delete_pairing

        def flaky_delete(app_id, node_id):
            if (app_id, node_id) == ("kopfrechnen", 10):
                raise StoreError("disk I/O error")
            real_delete(app_id, node_id)

        monkeypatch.setattr(validator, "delete_pairing", flaky_delete)
        report = validator.run()
        assert report.deleted == 2
        failed = [p for p in report.pairings if p.delete_failed]
        assert [(p.app_id, p.node_id) for p in failed] == [("kopfrechnen", 10)]
        assert links(graph) == {(1, 10), (2, 10), (4, 12)}
