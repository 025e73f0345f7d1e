"""
Tests for PlayerIdentity - keyring storage with a player_data.json fallback.
"""

import json
import os

import keyring
import keyring.errors

from petsim.client.identity import PlayerIdentity


def read_player_data(home):
    with open(os.path.join(str(home), "player_data.json")) as f:
        return json.load(f)


class TestPlayerIdentity:
    def test_first_run_invents_player_id(self, memory_keyring):
        identity = PlayerIdentity()

        player_id = identity.load_or_create()

        assert player_id.startswith("player_")
        assert player_id[len("player_"):].isdigit()
        assert memory_keyring[("PetSimulator", "player_id")] == player_id

    def test_id_is_stable_across_runs(self):
        first = PlayerIdentity().load_or_create()
        second = PlayerIdentity().load_or_create()

        assert first == second

    def test_player_name_is_stored_in_file(self, isolated_user_data):
        identity = PlayerIdentity()

        identity.load_or_create("  Alice ")

        assert identity.player_name == "Alice"
        assert read_player_data(isolated_user_data)["player_name"] == "Alice"
        assert PlayerIdentity().player_name == "Alice"

    def test_falls_back_to_file_without_keyring(self, monkeypatch, isolated_user_data):
        def no_keyring(*args):
            raise keyring.errors.NoKeyringError()

        monkeypatch.setattr(keyring, "get_password", no_keyring)
        monkeypatch.setattr(keyring, "set_password", no_keyring)

        player_id = PlayerIdentity().load_or_create()

        assert read_player_data(isolated_user_data)["player_id"] == player_id
        assert PlayerIdentity().load_or_create() == player_id

    def test_corrupt_player_file_is_overwritten(self, isolated_user_data):
        with open(os.path.join(str(isolated_user_data), "player_data.json"), "w") as f:
            f.write("{broken")

        identity = PlayerIdentity()
        identity.set_player_name("Bob")

        assert read_player_data(isolated_user_data) == {"player_name": "Bob"}
