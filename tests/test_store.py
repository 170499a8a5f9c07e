"""Tests for SQLite persistence of users, proposals and materials."""

import sqlite3

import pytest

from schemas.material import Material
from schemas.proposal import DraftType, FullProposal, ProposalContent, ProposalStatus
from webapp.proposal.errors import InputValidationError, ProposalNotFound
from webapp.store import ProposalStore, hash_password, verify_password

from conftest import detail_payload


def make_proposal(proposal_id="p-1", research=None):
    jp = ProposalContent.model_validate(detail_payload("jp"))
    jp.client_research = research
    en = ProposalContent.model_validate(detail_payload("en"))
    return FullProposal(id=proposal_id, jp=jp, en=en)


@pytest.fixture
def store(tmp_path):
    s = ProposalStore(str(tmp_path / "proposals.db"))
    s.authenticate_user("sato", "sato-pass")
    s.authenticate_user("suzuki", "suzuki-pass")
    return s


class TestUsers:

    def test_token_is_stable(self, store):
        first = store.authenticate_user("sato", "sato-pass")
        second = store.authenticate_user("sato", "sato-pass")
        assert first["token"] == second["token"]
        assert store.user_for_token(first["token"])["username"] == "sato"

    def test_wrong_password_returns_none(self, store):
        assert store.authenticate_user("sato", "guess") is None
        assert store.authenticate_user("sato", "suzuki-pass") is None

    def test_missing_password_rejected(self, store):
        with pytest.raises(InputValidationError):
            store.authenticate_user("sato", "")

    def test_password_hash_not_exposed(self, store):
        user = store.authenticate_user("sato", "sato-pass")
        assert "password_hash" not in user
        assert "password_hash" not in store.user_for_token(user["token"])

    def test_password_hash_is_salted(self):
        first, second = hash_password("secret"), hash_password("secret")
        assert first != second
        assert "secret" not in first
        assert verify_password("secret", first)
        assert not verify_password("Secret", first)
        assert not verify_password("secret", "plain-text")

    def test_legacy_database_gains_password_column(self, tmp_path):
        db_path = tmp_path / "legacy.db"
        conn = sqlite3.connect(str(db_path))
        conn.execute("CREATE TABLE users (username TEXT PRIMARY KEY, display_name TEXT, "
                     "token TEXT UNIQUE, created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)")
        conn.execute("INSERT INTO users (username, display_name, token) VALUES ('sato', 'sato', 'old-token')")
        conn.commit()
        conn.close()

        store = ProposalStore(str(db_path))
        # A user without a stored password cannot claim the account by logging in.
        assert store.authenticate_user("sato", "anything") is None
        assert store.authenticate_user("tanaka", "tanaka-pass")["token"]

    def test_unknown_token(self, store):
        assert store.user_for_token("nope") is None
        assert store.user_for_token("") is None

    def test_empty_username(self, store):
        with pytest.raises(InputValidationError):
            store.authenticate_user("  ", "pass")


class TestProposals:

    def test_round_trip(self, store, sample_profile):
        proposal = make_proposal()
        store.save_proposal("sato", proposal, client_name="サンプル", profile=sample_profile)

        assert store.load_proposal("sato", "p-1") == proposal
        assert store.load_profile("sato", "p-1") == sample_profile

    def test_client_name_defaults_from_research(self, store, sample_research):
        store.save_proposal("sato", make_proposal(research=sample_research))
        summary = store.list_proposals("sato")[0]
        assert summary.client_name == "株式会社サンプルコスメ"
        assert summary.website_url == "https://sample-cosme.example.com"

    def test_owner_scoping(self, store):
        store.save_proposal("sato", make_proposal())

        with pytest.raises(ProposalNotFound):
            store.load_proposal("suzuki", "p-1")
        with pytest.raises(ProposalNotFound):
            store.save_proposal("suzuki", make_proposal())
        assert store.list_proposals("suzuki") == []
        assert store.delete_proposal("suzuki", "p-1") is False
        assert store.load_proposal("sato", "p-1").id == "p-1"

    def test_resave_updates_in_place(self, store):
        store.save_proposal("sato", make_proposal())
        proposal = make_proposal()
        proposal.jp.tagline = "新しいタグライン"
        store.save_proposal("sato", proposal, status=ProposalStatus.COMPLETED)

        summaries = store.list_proposals("sato")
        assert len(summaries) == 1
        assert summaries[0].status == ProposalStatus.COMPLETED
        assert store.load_proposal("sato", "p-1").jp.tagline == "新しいタグライン"

    def test_list_filters_by_status(self, store):
        store.save_proposal("sato", make_proposal("p-1"))
        store.save_proposal("sato", make_proposal("p-2"), status=ProposalStatus.COMPLETED)

        assert [s.id for s in store.list_proposals("sato", ProposalStatus.DRAFT)] == ["p-1"]
        assert [s.id for s in store.list_proposals("sato", ProposalStatus.COMPLETED)] == ["p-2"]

    def test_set_status(self, store):
        store.save_proposal("sato", make_proposal())
        store.set_status("sato", "p-1", ProposalStatus.COMPLETED)
        assert store.list_proposals("sato")[0].status == ProposalStatus.COMPLETED
        with pytest.raises(ProposalNotFound):
            store.set_status("sato", "missing", ProposalStatus.DRAFT)

    def test_delete(self, store):
        store.save_proposal("sato", make_proposal())
        assert store.delete_proposal("sato", "p-1") is True
        with pytest.raises(ProposalNotFound):
            store.load_proposal("sato", "p-1")


class TestEmailDrafts:

    def test_update_standard_draft(self, store):
        store.save_proposal("sato", make_proposal())
        updated = store.update_email_draft("sato", "p-1", DraftType.STANDARD, "新しい本文")

        assert updated.jp.email_drafts.standard == "新しい本文"
        assert updated.jp.email_draft == "新しい本文"
        stored = store.load_proposal("sato", "p-1")
        assert stored.jp.email_drafts.standard == "新しい本文"
        assert stored.en.email_drafts.standard == make_proposal().en.email_drafts.standard

    def test_update_other_draft_leaves_legacy_field(self, store):
        store.save_proposal("sato", make_proposal())
        updated = store.update_email_draft("sato", "p-1", "casual", "Hi!", language="en")
        assert updated.en.email_drafts.casual == "Hi!"
        assert updated.en.email_draft == make_proposal().en.email_draft

    def test_unknown_language(self, store):
        store.save_proposal("sato", make_proposal())
        with pytest.raises(InputValidationError):
            store.update_email_draft("sato", "p-1", "standard", "x", language="fr")

    def test_other_owner_cannot_update(self, store):
        store.save_proposal("sato", make_proposal())
        with pytest.raises(ProposalNotFound):
            store.update_email_draft("suzuki", "p-1", "standard", "x")


class TestMaterialsAndStats:

    def test_add_list_delete(self, store, sample_materials):
        new_id = store.add_material("sato", sample_materials[0].model_copy(update={"id": ""}))
        assert new_id.startswith("mat-")

        materials = store.list_materials("sato")
        assert [m.id for m in materials] == [new_id]
        assert materials[0].trade_name == "ヒアルロン酸Na"
        assert store.list_materials("suzuki") == []

        assert store.delete_material("suzuki", new_id) is False
        assert store.delete_material("sato", new_id) is True
        assert store.list_materials("sato") == []

    def test_stats(self, store):
        store.save_proposal("sato", make_proposal("p-1"))
        store.save_proposal("sato", make_proposal("p-2"), status=ProposalStatus.COMPLETED)
        store.add_material("sato", Material(trade_name="ビオセラミド"))

        assert store.stats("sato") == {
            "total_proposals": 2,
            "draft_proposals": 1,
            "completed_proposals": 1,
            "total_materials": 1,
        }
        assert store.stats("suzuki")["total_proposals"] == 0
