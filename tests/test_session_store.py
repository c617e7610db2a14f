"""
Tests for file-backed sessions and the in-memory report stash.
"""
import json
import os

import pytest

from jobdance.config import TEMP_REPORT_KEY
from jobdance.infrastructure.data import ConversationRecord, EphemeralReportStore, ProfileStore, SessionStore

MESSAGES = [
    {"role": "assistant", "content": "Tell me about yourself."},
    {"role": "user", "content": "I am a backend engineer."},
]


@pytest.fixture
def store(tmp_path):
    return SessionStore(str(tmp_path / "sessions"))


class TestSessionStore:

    def test_save_and_load(self, store):
        session_id = store.save_session("session_abc", MESSAGES, {"overallPerformance": {"score": 80}}, 125,
                                        current_question="Tell me about yourself.")

        record = store.load_session(session_id)

        assert session_id == "session_abc"
        assert record.messages == MESSAGES
        assert record.report["overallPerformance"]["score"] == 80
        assert record.duration_seconds == 125
        assert record.question_count == 1

    def test_file_uses_wire_names(self, store):
        store.save_session("session_abc", MESSAGES, None, 10)

        with open(os.path.join(store.sessions_dir, "session_abc.json"), encoding="utf-8") as f:
            data = json.load(f)

        assert data["sessionId"] == "session_abc"
        assert data["sessionData"]["messages"] == MESSAGES
        assert data["report"] is None
        assert data["duration"] == 10

    def test_update_report(self, store):
        store.save_session("session_abc", MESSAGES, None, 10)

        store.update_report("session_abc", {"overallPerformance": {"score": 55}})

        record = store.load_session("session_abc")
        assert record.report == {"overallPerformance": {"score": 55}}
        assert record.report_updated_at is not None

    def test_update_missing_session_raises(self, store):
        with pytest.raises(FileNotFoundError):
            store.update_report("session_missing", {})

    def test_missing_session_is_none(self, store):
        assert store.load_session("session_missing") is None

    @pytest.mark.parametrize("bad_id", ["../escape", ".hidden", "a/b"])
    def test_rejects_path_like_ids(self, store, bad_id):
        with pytest.raises(ValueError):
            store.load_session(bad_id)

    def test_list_sessions_newest_first_and_skips_garbage(self, store):
        os.makedirs(store.sessions_dir)
        for session_id, created in (("session_old", "2024-01-01T00:00:00+00:00"),
                                    ("session_new", "2024-06-01T00:00:00+00:00")):
            record = ConversationRecord(session_id=session_id, created_at=created, messages=MESSAGES)
            with open(os.path.join(store.sessions_dir, f"{session_id}.json"), "w", encoding="utf-8") as f:
                json.dump(record.to_dict(), f)
        with open(os.path.join(store.sessions_dir, "broken.json"), "w", encoding="utf-8") as f:
            f.write("{not json")

        records = store.list_sessions()

        assert [r.session_id for r in records] == ["session_new", "session_old"]

    @pytest.mark.parametrize("payload", ["[1, 2, 3]", '"just a string"', '{"sessionId": "x", "sessionData": "text"}'])
    def test_list_sessions_skips_wrong_shape(self, store, payload):
        store.save_session("session_good", MESSAGES, None, 10)
        with open(os.path.join(store.sessions_dir, "odd.json"), "w", encoding="utf-8") as f:
            f.write(payload)

        records = store.list_sessions()

        assert [r.session_id for r in records] == ["session_good"]

    def test_list_sessions_without_directory(self, store):
        assert store.list_sessions() == []

    def test_no_temp_files_left_behind(self, store):
        store.save_session("session_abc", MESSAGES, None, 10)

        assert os.listdir(store.sessions_dir) == ["session_abc.json"]


class TestEphemeralReportStore:

    def test_stash_report(self):
        store = EphemeralReportStore()

        store.stash_report({"overallPerformance": {"score": 70}}, MESSAGES, 42)

        assert TEMP_REPORT_KEY in store
        payload = store.temporary_report()
        assert payload["report"] == {"overallPerformance": {"score": 70}}
        assert payload["messages"] == MESSAGES
        assert payload["duration"] == 42
        assert payload["timestamp"]

    def test_empty_store(self):
        assert EphemeralReportStore().temporary_report() is None


class TestProfileStore:

    def test_loads_camel_case_profile(self, tmp_path):
        path = tmp_path / "profile.json"
        path.write_text(json.dumps({
            "fullName": "Ada Lovelace",
            "workExperience": [{"position": "Engineer", "company": "Analytical Engines"}],
            "skills": ["Python", "Math"],
        }), encoding="utf-8")

        profile = ProfileStore(str(path)).load()

        assert profile.full_name == "Ada Lovelace"
        assert profile.work_experience[0].company == "Analytical Engines"
        assert "Skills: Python, Math" in profile.summary()

    def test_missing_profile_is_none(self, tmp_path):
        assert ProfileStore(str(tmp_path / "nope.json")).load() is None
        assert ProfileStore(None).load() is None

    def test_unreadable_profile_is_none(self, tmp_path):
        path = tmp_path / "profile.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")

        assert ProfileStore(str(path)).load() is None
