"""Unit tests for DealerDirectoryStore."""

from __future__ import annotations

from datetime import timedelta

from outreach_mcp.constants import ACTIVITIES_SLOT, DEALERS_SLOT
from outreach_mcp.data.directory import DealerDirectoryStore, DirectoryBackend
from outreach_mcp.data.fallback import MemoryFallbackStore

from fakes import FakeBackend


def _store(backend: FakeBackend, fallback: MemoryFallbackStore | None = None):
    return DealerDirectoryStore(backend, fallback or MemoryFallbackStore())


# ── Protocol compliance ────────────────────────────────────────


class TestProtocolCompliance:
    def test_fake_backend_satisfies_protocol(self, backend: FakeBackend):
        assert isinstance(backend, DirectoryBackend)


# ── Initialize ─────────────────────────────────────────────────


class TestInitialize:
    async def test_wrapped_payload_gets_defaults(self):
        backend = FakeBackend(dealers={"dealers": [{"name": "Acme Motors"}]})
        store = _store(backend)
        result = await store.initialize()

        assert result.ok
        assert result.dealers_source == "remote"
        (dealer,) = store.dealers
        assert dealer.name == "Acme Motors"
        assert dealer.status == "Not Contacted"
        assert dealer.notes == ""
        assert dealer.id
        assert dealer.address == ""
        assert dealer.last_contact is None

    async def test_bare_list_payload(self):
        backend = FakeBackend(dealers=[{"id": 1, "name": "A"}, {"id": 2, "name": "B"}])
        store = _store(backend)
        await store.initialize()
        assert [d.id for d in store.dealers] == ["1", "2"]

    async def test_missing_name_gets_placeholder(self):
        store = _store(FakeBackend(dealers=[{"id": "x"}]))
        await store.initialize()
        assert store.dealers[0].name == "Unnamed Dealer"

    async def test_unknown_status_reset_and_known_status_canonicalized(self):
        store = _store(
            FakeBackend(dealers=[
                {"id": "a", "status": "follow-up"},
                {"id": "b", "status": "Interested"},
            ])
        )
        await store.initialize()
        statuses = [d.status for d in store.dealers]
        assert statuses == ["Follow Up", "Not Contacted"]

    async def test_duplicate_ids_are_reassigned(self):
        store = _store(FakeBackend(dealers=[{"id": 7, "name": "A"}, {"id": "7", "name": "B"}]))
        await store.initialize()
        ids = [d.id for d in store.dealers]
        assert ids[0] == "7"
        assert len(set(ids)) == 2

    async def test_remote_failure_uses_local_fallback(self):
        backend = FakeBackend()
        backend.fail_load = True
        fallback = MemoryFallbackStore({
            DEALERS_SLOT: [
                {"id": "d1", "name": "One"},
                {"id": "d2", "name": "Two"},
                {"id": "d3", "name": "Three"},
            ],
            ACTIVITIES_SLOT: [
                {"id": "a1", "dealerId": "d1", "date": "2024-01-01", "type": "call", "notes": "x"},
            ],
        })
        store = _store(backend, fallback)
        result = await store.initialize()

        assert not result.ok
        assert result.dealers_source == "local"
        assert result.activities_source == "local"
        assert [d.id for d in store.dealers] == ["d1", "d2", "d3"]
        assert len(store.activities) == 1
        assert len(result.errors) == 2

    async def test_remote_failure_without_fallback_is_empty(self):
        backend = FakeBackend()
        backend.fail_load = True
        store = _store(backend)
        result = await store.initialize()
        assert result.dealers_source == "empty"
        assert store.dealers == ()
        assert store.activities == ()

    async def test_malformed_payload_treated_as_failure(self):
        backend = FakeBackend(dealers={"unexpected": True})
        fallback = MemoryFallbackStore({DEALERS_SLOT: [{"id": "kept", "name": "Kept"}]})
        store = _store(backend, fallback)
        result = await store.initialize()
        assert result.dealers_source == "local"
        assert store.dealers[0].id == "kept"

    async def test_remote_load_is_mirrored_locally(self, fallback: MemoryFallbackStore):
        store = _store(FakeBackend(dealers=[{"id": "m", "name": "Mirror"}]), fallback)
        await store.initialize()
        assert fallback.load(DEALERS_SLOT)[0]["id"] == "m"

    async def test_activities_accept_bare_list(self):
        backend = FakeBackend(
            activities=[{"id": "a", "dealerId": 3, "date": "2024-02-02", "type": "email", "notes": "hi"}]
        )
        store = _store(backend)
        await store.initialize()
        assert store.activities[0].dealer_id == "3"

    async def test_unknown_keys_round_trip(self, backend: FakeBackend):
        backend.dealers_payload = [{"id": "s", "name": "S", "specialty": "Exotics"}]
        store = _store(backend)
        await store.initialize()
        assert store.dealers[0].extras == {"specialty": "Exotics"}

        await store.persist()
        assert backend.saved[-1]["dealers"][0]["specialty"] == "Exotics"


# ── AddDealer ──────────────────────────────────────────────────


class TestAddDealer:
    async def test_add_assigns_id_and_timestamps(self, store: DealerDirectoryStore):
        result = await store.add_dealer({"name": "Bell Motors", "phone": "555-0100"})
        assert result.ok
        assert not result.saved_locally
        dealer = result.record
        assert dealer.id.startswith("dealer-")
        assert dealer.created_at == dealer.updated_at
        assert dealer.status == "Not Contacted"

    async def test_ids_unique_and_order_preserved(self, store: DealerDirectoryStore):
        names = [f"Dealer {i}" for i in range(20)]
        for name in names:
            await store.add_dealer({"name": name})
        assert [d.name for d in store.dealers] == names
        assert len({d.id for d in store.dealers}) == 20

    async def test_empty_strings_become_absent(self, store: DealerDirectoryStore):
        result = await store.add_dealer({"name": "X", "email": "", "notes": "  "})
        assert result.record.email is None
        assert result.record.notes is None

    async def test_missing_name_defaults(self, store: DealerDirectoryStore):
        result = await store.add_dealer({"name": ""})
        assert result.record.name == "New Dealer"

    async def test_caller_cannot_set_bookkeeping(self, store: DealerDirectoryStore):
        result = await store.add_dealer(
            {"id": "mine", "name": "X", "createdAt": "2000-01-01T00:00:00Z"}
        )
        assert result.record.id != "mine"
        assert result.record.created_at.year != 2000
        assert "id" not in result.record.extras

    async def test_snake_case_aliases(self, store: DealerDirectoryStore):
        result = await store.add_dealer({"name": "X", "contact_person": "Pat"})
        assert result.record.contact_person == "Pat"

    async def test_invalid_status_rejected_without_network(
        self, store: DealerDirectoryStore, backend: FakeBackend
    ):
        result = await store.add_dealer({"name": "X", "status": "Maybe"})
        assert not result.ok
        assert result.error_kind == "validation"
        assert backend.calls == []
        assert store.count() == 0

    async def test_persists_whole_collection(
        self, store: DealerDirectoryStore, backend: FakeBackend
    ):
        await store.add_dealer({"name": "A"})
        await store.add_dealer({"name": "B"})
        assert [d["name"] for d in backend.saved[-1]["dealers"]] == ["A", "B"]
        assert backend.saved[-1]["lastUpdated"]

    async def test_remote_failure_keeps_record_and_mirrors_locally(
        self,
        store: DealerDirectoryStore,
        backend: FakeBackend,
        fallback: MemoryFallbackStore,
    ):
        backend.fail_save = True
        result = await store.add_dealer({"name": "Offline Motors"})

        assert result.ok
        assert result.saved_locally
        assert [d.name for d in store.dealers] == ["Offline Motors"]
        assert fallback.load(DEALERS_SLOT)[0]["name"] == "Offline Motors"

    async def test_both_persist_paths_failing_reports_error(
        self, store: DealerDirectoryStore, backend: FakeBackend, fallback
    ):
        backend.fail_save = True

        def broken_save(slot, payload):
            raise OSError("disk full")

        fallback.save = broken_save
        result = await store.add_dealer({"name": "Nowhere"})
        assert not result.ok
        assert result.error_kind == "persist"
        assert store.count() == 1


# ── UpdateDealer ───────────────────────────────────────────────


class TestUpdateDealer:
    async def _seeded(self) -> tuple[DealerDirectoryStore, FakeBackend]:
        backend = FakeBackend(dealers={"dealers": [
            {"id": 42, "name": "Acme Motors", "status": "Not Contacted",
             "updatedAt": "2024-01-01T00:00:00.000Z"},
        ]})
        store = _store(backend)
        await store.initialize()
        return store, backend

    async def test_merge_keeps_id_and_advances_updated_at(self):
        store, _ = await self._seeded()
        before = store.get_dealer("42")
        result = await store.update_dealer("42", {"phone": "555", "id": "other"})
        assert result.ok
        after = result.record
        assert after.id == "42"
        assert after.phone == "555"
        assert after.name == "Acme Motors"
        assert after.updated_at > before.updated_at

    async def test_updated_at_strictly_increases_on_rapid_updates(self):
        store, _ = await self._seeded()
        stamps = []
        for i in range(5):
            result = await store.update_dealer(42, {"notes": str(i)})
            stamps.append(result.record.updated_at)
        assert all(b > a for a, b in zip(stamps, stamps[1:]))

    async def test_future_updated_at_still_advances(self):
        store, _ = await self._seeded()
        await store.update_dealer(42, {"notes": "x"})
        store._dealers[0].updated_at += timedelta(days=365)
        future = store.get_dealer(42).updated_at
        result = await store.update_dealer(42, {"notes": "y"})
        assert result.record.updated_at > future

    async def test_last_contact_promotes_status(self):
        store, _ = await self._seeded()
        result = await store.update_dealer(42, {"lastContact": "2024-01-01"})
        assert result.record.status == "Contacted"
        assert result.record.last_contact == "2024-01-01"

    async def test_explicit_status_wins_over_promotion(self):
        store, _ = await self._seeded()
        result = await store.update_dealer(
            42, {"lastContact": "2024-01-01", "status": "Scheduled"}
        )
        assert result.record.status == "Scheduled"

    async def test_no_promotion_from_other_status(self):
        store, _ = await self._seeded()
        await store.update_dealer(42, {"status": "Follow Up"})
        result = await store.update_dealer(42, {"lastContact": "2024-03-01"})
        assert result.record.status == "Follow Up"

    async def test_null_last_contact_does_not_promote(self):
        store, _ = await self._seeded()
        result = await store.update_dealer(42, {"lastContact": None})
        assert result.record.status == "Not Contacted"

    async def test_blank_name_is_ignored(self):
        store, _ = await self._seeded()
        result = await store.update_dealer(42, {"name": "", "notes": "n"})
        assert result.record.name == "Acme Motors"
        result = await store.update_dealer(42, {"name": None})
        assert result.record.name == "Acme Motors"

    async def test_untouched_fields_unchanged(self):
        store, _ = await self._seeded()
        await store.update_dealer(42, {"email": "a@b.c"})
        result = await store.update_dealer(42, {"phone": "1"})
        assert result.record.email == "a@b.c"

    async def test_not_found(self):
        store, backend = await self._seeded()
        saves = len(backend.saved)
        result = await store.update_dealer("missing", {"phone": "1"})
        assert not result.ok
        assert result.error_kind == "not_found"
        assert len(backend.saved) == saves

    async def test_invalid_status_rejected(self):
        store, _ = await self._seeded()
        result = await store.update_dealer(42, {"status": "Unsure"})
        assert result.error_kind == "validation"
        assert store.get_dealer(42).status == "Not Contacted"

    async def test_snapshots_are_not_live(self):
        store, _ = await self._seeded()
        snapshot = store.dealers
        await store.update_dealer(42, {"notes": "changed"})
        assert snapshot[0].notes == ""


# ── RemoveDealer ───────────────────────────────────────────────


class TestRemoveDealer:
    async def test_remove_keeps_activities(self, store: DealerDirectoryStore):
        added = await store.add_dealer({"name": "Gone"})
        dealer_id = added.record.id
        await store.add_activity(
            {"dealerId": dealer_id, "date": "2024-01-01", "type": "call", "notes": "hi"}
        )
        result = await store.remove_dealer(dealer_id)
        assert result.ok
        assert store.count() == 0
        assert len(store.activities) == 1
        assert store.dealer_label(dealer_id) == f"Dealer #{dealer_id}"

    async def test_remove_unknown(self, store: DealerDirectoryStore):
        result = await store.remove_dealer("nope")
        assert result.error_kind == "not_found"


# ── FilterDealers ──────────────────────────────────────────────


class TestFilterDealers:
    async def _seeded(self) -> DealerDirectoryStore:
        store = _store(FakeBackend(dealers=[
            {"id": 1, "name": "Acme Motors", "address": "1 Main St"},
            {"id": 2, "name": "Bell Auto", "contactPerson": "Jordan Reyes"},
            {"id": 3, "name": "Coastal Cars", "status": "Sold", "notes": "Porsche buyer"},
        ]))
        await store.initialize()
        return store

    async def test_empty_query_returns_everything_in_order(self):
        store = await self._seeded()
        assert store.filter_dealers("") == list(store.dealers)
        assert store.filter_dealers(None) == list(store.dealers)

    async def test_case_insensitive(self):
        store = await self._seeded()
        assert [d.id for d in store.filter_dealers("ACME")] == ["1"]
        assert [d.id for d in store.filter_dealers("jordan")] == ["2"]
        assert [d.id for d in store.filter_dealers("porsche")] == ["3"]

    async def test_matches_status(self):
        store = await self._seeded()
        assert {d.id for d in store.filter_dealers("not contacted")} == {"1", "2"}

    async def test_no_match(self):
        store = await self._seeded()
        assert store.filter_dealers("zzz") == []

    async def test_filter_does_not_mutate(self):
        store = await self._seeded()
        store.filter_dealers("acme")[0].name = "Changed"
        assert store.get_dealer(1).name == "Acme Motors"


# ── Activities ─────────────────────────────────────────────────


class TestAddActivity:
    VALID = {"dealerId": "42", "date": "2024-01-02", "type": "call", "notes": "Left voicemail"}

    async def test_missing_notes_fails_without_network(
        self, store: DealerDirectoryStore, backend: FakeBackend
    ):
        result = await store.add_activity({**self.VALID, "notes": ""})
        assert not result.ok
        assert result.error == "notes is required."
        assert backend.calls == []

    async def test_first_missing_field_is_named(self, store: DealerDirectoryStore):
        result = await store.add_activity({"notes": "x"})
        assert result.error == "dealerId is required."
        result = await store.add_activity({"dealerId": "1", "notes": "x"})
        assert result.error == "date is required."

    async def test_unknown_type_rejected(self, store: DealerDirectoryStore, backend):
        result = await store.add_activity({**self.VALID, "type": "carrier-pigeon"})
        assert result.error_kind == "validation"
        assert backend.calls == []

    async def test_hyphenated_type_canonicalized(self, store: DealerDirectoryStore, backend):
        result = await store.add_activity({**self.VALID, "type": "test-drive"})
        assert result.ok
        assert backend.posted[0]["type"] == "test_drive"

    async def test_adopts_server_echo_and_orders_newest_first(
        self, store: DealerDirectoryStore, fallback: MemoryFallbackStore
    ):
        await store.add_activity(self.VALID)
        result = await store.add_activity({**self.VALID, "notes": "Second"})
        assert result.ok
        assert not result.saved_locally
        assert result.record.id == "srv-2"
        assert [a.notes for a in store.activities] == ["Second", "Left voicemail"]
        assert [a["id"] for a in fallback.load(ACTIVITIES_SLOT)] == ["srv-2", "srv-1"]

    async def test_without_echo_uses_client_payload(self, store, backend: FakeBackend):
        backend.echo_activity = False
        result = await store.add_activity(self.VALID)
        assert result.ok
        assert result.record.id.startswith("act-")
        assert result.record.notes == "Left voicemail"

    async def test_remote_failure_saves_locally(
        self, store: DealerDirectoryStore, backend: FakeBackend, fallback
    ):
        backend.fail_post = True
        result = await store.add_activity({**self.VALID, "follow_up_date": "2024-02-01"})
        assert result.ok
        assert result.saved_locally
        entry = result.record
        assert entry.id.startswith("act-")
        assert entry.created_at is not None
        assert entry.follow_up_date == "2024-02-01"
        assert fallback.load(ACTIVITIES_SLOT)[0]["notes"] == "Left voicemail"

    async def test_list_activities_filters_and_limits(self, store: DealerDirectoryStore):
        for i in range(3):
            await store.add_activity({**self.VALID, "notes": f"n{i}"})
        await store.add_activity({**self.VALID, "dealerId": "7", "notes": "other"})
        assert len(store.list_activities(dealer_id=42)) == 3
        assert len(store.list_activities(limit=2)) == 2
        assert store.list_activities(dealer_id="7")[0].notes == "other"


# ── Listeners ──────────────────────────────────────────────────


class TestListeners:
    async def test_events_fire_after_writes(self, store: DealerDirectoryStore):
        events: list[str] = []
        store.add_listener(lambda event, record: events.append(event))
        added = await store.add_dealer({"name": "A"})
        await store.update_dealer(added.record.id, {"notes": "x"})
        await store.add_activity(
            {"dealerId": added.record.id, "date": "2024-01-01", "type": "email", "notes": "y"}
        )
        await store.remove_dealer(added.record.id)
        assert events == ["dealer_added", "dealer_updated", "activity_added", "dealer_removed"]

    async def test_no_event_on_failed_validation(self, store: DealerDirectoryStore):
        events: list[str] = []
        store.add_listener(lambda event, record: events.append(event))
        await store.update_dealer("missing", {"notes": "x"})
        await store.add_activity({})
        assert events == []

    async def test_listener_error_does_not_propagate(self, store: DealerDirectoryStore):
        def bad_listener(event, record):
            raise RuntimeError("boom")

        store.add_listener(bad_listener)
        result = await store.add_dealer({"name": "Still Works"})
        assert result.ok

    async def test_remove_listener(self, store: DealerDirectoryStore):
        events: list[str] = []

        def listener(event, record):
            events.append(event)

        store.add_listener(listener)
        store.remove_listener(listener)
        await store.add_dealer({"name": "Quiet"})
        assert events == []
