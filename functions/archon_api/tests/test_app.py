import re
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient

from archon_api.app import create_app
from archon_api.auth import StubTokenVerifier
from archon_api.db import InMemoryDocumentStore
from archon_api.dependencies import get_document_store, get_token_verifier

ALICE = {"Authorization": "Bearer stub:alice:alice@example.com"}
BOB = {"Authorization": "Bearer stub:bob"}

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class ResourceApiTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app()
        self.store = InMemoryDocumentStore()
        self.app.dependency_overrides[get_document_store] = lambda: self.store
        self.app.dependency_overrides[get_token_verifier] = StubTokenVerifier
        self.client = TestClient(self.app)

    def _create_klant(self, headers=ALICE, **fields):
        payload = {"name": "Jan de Vries", "email": "jan@example.com", **fields}
        response = self.client.post("/api/klanten", json=payload, headers=headers)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_create_then_get_round_trip(self):
        created = self._create_klant(company="De Vries BV", type="zakelijk")
        self.assertTrue(created["id"])
        self.assertEqual(created["userId"], "alice")
        self.assertIn("createdAt", created)
        self.assertEqual(created["createdAt"], created["updatedAt"])

        response = self.client.get(f"/api/klanten/{created['id']}", headers=ALICE)
        self.assertEqual(response.status_code, 200)
        fetched = response.json()
        self.assertEqual(fetched["name"], "Jan de Vries")
        self.assertEqual(fetched["company"], "De Vries BV")
        self.assertEqual(fetched["email"], "jan@example.com")
        self.assertEqual(fetched["type"], "zakelijk")
        self.assertEqual(fetched["status"], "actief")
        self.assertEqual(fetched["userId"], "alice")
        self.assertEqual(fetched["createdAt"], created["createdAt"])

    def test_client_supplied_identity_and_time_are_ignored_on_create(self):
        created = self._create_klant(
            id="forged", userId="bob", createdAt="1999-01-01T00:00:00Z"
        )
        self.assertNotEqual(created["id"], "forged")
        self.assertEqual(created["userId"], "alice")
        self.assertFalse(created["createdAt"].startswith("1999"))

    def test_list_returns_newest_first(self):
        with patch(
            "archon_api.resources.utcnow",
            side_effect=[T0, T0 + timedelta(minutes=5)],
        ):
            first = self._create_klant(name="Eerste")
            second = self._create_klant(name="Tweede")

        response = self.client.get("/api/klanten", headers=ALICE)
        self.assertEqual(response.status_code, 200)
        ids = [klant["id"] for klant in response.json()["klanten"]]
        self.assertEqual(ids, [second["id"], first["id"]])

    def test_tenants_never_see_each_other(self):
        created = self._create_klant()
        doc_url = f"/api/klanten/{created['id']}"

        self.assertEqual(
            self.client.get("/api/klanten", headers=BOB).json(), {"klanten": []}
        )
        self.assertEqual(self.client.get(doc_url, headers=BOB).status_code, 404)
        self.assertEqual(
            self.client.put(doc_url, json={"name": "Hacked"}, headers=BOB).status_code,
            404,
        )
        self.assertEqual(self.client.delete(doc_url, headers=BOB).status_code, 404)

        still_there = self.client.get(doc_url, headers=ALICE).json()
        self.assertEqual(still_there["name"], "Jan de Vries")

    def test_put_twice_only_moves_updated_at(self):
        with patch(
            "archon_api.resources.utcnow",
            side_effect=[T0, T0 + timedelta(minutes=1), T0 + timedelta(minutes=2)],
        ):
            created = self._create_klant()
            doc_url = f"/api/klanten/{created['id']}"
            payload = {
                "id": "other-id",
                "createdAt": "1999-01-01T00:00:00Z",
                "name": "Jan de Vries Jr.",
                "phone": "0612345678",
            }
            first = self.client.put(doc_url, json=payload, headers=ALICE).json()
            second = self.client.put(doc_url, json=payload, headers=ALICE).json()

        self.assertEqual(first["id"], created["id"])
        self.assertEqual(second["id"], created["id"])
        self.assertEqual(first["createdAt"], created["createdAt"])
        self.assertNotEqual(first["updatedAt"], second["updatedAt"])
        strip = lambda doc: {k: v for k, v in doc.items() if k != "updatedAt"}
        self.assertEqual(strip(first), strip(second))
        self.assertEqual(second["name"], "Jan de Vries Jr.")
        self.assertEqual(second["email"], "jan@example.com")

    def test_unknown_fields_are_rejected(self):
        response = self.client.post(
            "/api/klanten", json={"name": "Jan", "shoeSize": 44}, headers=ALICE
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("shoeSize", response.json()["error"])
        self.assertEqual(self.store.collections, {})

    def test_mistyped_fields_are_rejected(self):
        response = self.client.post(
            "/api/klanten", json={"name": "Jan", "type": "onbekend"}, headers=ALICE
        )
        self.assertEqual(response.status_code, 400)

    def test_null_for_required_fields_is_rejected_on_update(self):
        created = self._create_klant()
        doc_url = f"/api/klanten/{created['id']}"
        for payload in ({"name": None}, {"type": None}, {"status": None}):
            with self.subTest(payload=payload):
                response = self.client.put(doc_url, json=payload, headers=ALICE)
                self.assertEqual(response.status_code, 400)

        fetched = self.client.get(doc_url, headers=ALICE).json()
        self.assertEqual(fetched["name"], "Jan de Vries")
        self.assertEqual(fetched["type"], "particulier")
        self.assertEqual(fetched["status"], "actief")

    def test_optional_fields_can_be_cleared(self):
        created = self._create_klant(company="De Vries BV")
        response = self.client.put(
            f"/api/klanten/{created['id']}", json={"company": None}, headers=ALICE
        )
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["company"])
        self.assertEqual(response.json()["name"], "Jan de Vries")

    def test_non_object_body_is_rejected(self):
        response = self.client.post("/api/klanten", json=["a"], headers=ALICE)
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    def test_missing_or_bad_credentials_never_mutate(self):
        cases = [
            ({}, "Missing auth token"),
            ({"Authorization": "Token stub:alice"}, "Missing auth token"),
            ({"Authorization": "Bearer "}, "Missing auth token"),
            ({"Authorization": "Bearer not-a-token"}, "Invalid or expired token"),
        ]
        for headers, message in cases:
            with self.subTest(headers=headers):
                response = self.client.post(
                    "/api/klanten", json={"name": "Jan"}, headers=headers
                )
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json(), {"error": message})
                self.assertEqual(
                    self.client.get("/api/offertes", headers=headers).status_code, 401
                )
        self.assertEqual(self.store.collections, {})

    def test_delete_then_get_is_not_found(self):
        created = self._create_klant()
        doc_url = f"/api/klanten/{created['id']}"
        response = self.client.delete(doc_url, headers=ALICE)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"message": "Klant deleted successfully"})
        self.assertEqual(self.client.get(doc_url, headers=ALICE).status_code, 404)

    def test_delete_unknown_id_is_not_found_and_harmless(self):
        kept = self._create_klant()
        response = self.client.delete("/api/klanten/does-not-exist", headers=ALICE)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Klant not found"})
        listed = self.client.get("/api/klanten", headers=ALICE).json()["klanten"]
        self.assertEqual([k["id"] for k in listed], [kept["id"]])

    def test_put_unknown_id_is_not_found(self):
        response = self.client.put(
            "/api/klanten/missing", json={"name": "X"}, headers=ALICE
        )
        self.assertEqual(response.status_code, 404)

    def test_unsupported_verb_is_method_not_allowed(self):
        response = self.client.patch("/api/klanten/abc", json={}, headers=ALICE)
        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.json(), {"error": "Method not allowed"})


class QuoteApiTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app()
        self.store = InMemoryDocumentStore()
        self.app.dependency_overrides[get_document_store] = lambda: self.store
        self.app.dependency_overrides[get_token_verifier] = StubTokenVerifier
        self.client = TestClient(self.app)

    def test_generated_number_has_year_and_six_digits(self):
        response = self.client.post("/api/offertes", json={}, headers=ALICE)
        self.assertEqual(response.status_code, 201)
        year = datetime.now(timezone.utc).year
        self.assertRegex(response.json()["nummer"], rf"^O{year}-\d{{6}}$")

    def test_explicit_number_is_preserved(self):
        response = self.client.post(
            "/api/offertes", json={"nummer": "OFF-0042"}, headers=ALICE
        )
        self.assertEqual(response.json()["nummer"], "OFF-0042")

    def test_totals_are_computed_from_items(self):
        response = self.client.post(
            "/api/offertes",
            json={
                "clientName": "Bakkerij Jansen",
                "items": [
                    {"omschrijving": "Tegels", "aantal": 2, "prijs": 100},
                    {"omschrijving": "Voegen", "prijs": 50},
                ],
            },
            headers=ALICE,
        )
        quote = response.json()
        self.assertEqual(quote["subtotaal"], 250)
        self.assertEqual(quote["btwBedrag"], 52.5)
        self.assertEqual(quote["totaal"], 302.5)

        updated = self.client.put(
            f"/api/offertes/{quote['id']}", json={"btwTarief": 9}, headers=ALICE
        ).json()
        self.assertEqual(updated["btwBedrag"], 22.5)
        self.assertEqual(updated["totaal"], 272.5)

    def test_status_changes_append_history(self):
        quote = self.client.post("/api/offertes", json={}, headers=ALICE).json()
        self.assertEqual(len(quote["statusHistory"]), 1)
        self.assertIsNone(quote["statusHistory"][0]["from"])
        self.assertEqual(quote["statusHistory"][0]["to"], "concept")

        doc_url = f"/api/offertes/{quote['id']}"
        sent = self.client.put(
            doc_url,
            json={"status": "verzonden", "statusReason": "Per mail verstuurd"},
            headers=ALICE,
        ).json()
        self.assertNotIn("statusReason", sent)
        self.assertEqual(len(sent["statusHistory"]), 2)
        entry = sent["statusHistory"][1]
        self.assertEqual(entry["from"], "concept")
        self.assertEqual(entry["to"], "verzonden")
        self.assertEqual(entry["by"], "alice")
        self.assertEqual(entry["reason"], "Per mail verstuurd")
        self.assertEqual(sent["statusHistory"][0], quote["statusHistory"][0])

        unchanged = self.client.put(
            doc_url, json={"status": "verzonden"}, headers=ALICE
        ).json()
        self.assertEqual(len(unchanged["statusHistory"]), 2)

    def test_history_cannot_be_written_by_clients(self):
        quote = self.client.post("/api/offertes", json={}, headers=ALICE).json()
        response = self.client.put(
            f"/api/offertes/{quote['id']}", json={"statusHistory": []}, headers=ALICE
        )
        self.assertEqual(response.status_code, 400)

    def test_null_items_status_or_date_is_rejected(self):
        quote = self.client.post(
            "/api/offertes",
            json={"items": [{"omschrijving": "Verf", "prijs": 10}]},
            headers=ALICE,
        ).json()
        doc_url = f"/api/offertes/{quote['id']}"
        for payload in (
            {"items": None, "status": None},
            {"datum": None},
            {"totaal": None},
        ):
            with self.subTest(payload=payload):
                response = self.client.put(doc_url, json=payload, headers=ALICE)
                self.assertEqual(response.status_code, 400)

        offertes = self.client.get("/api/offertes", headers=ALICE).json()["offertes"]
        self.assertEqual([o["id"] for o in offertes], [quote["id"]])
        self.assertEqual(offertes[0]["status"], "concept")
        self.assertEqual(len(offertes[0]["items"]), 1)

    def test_list_orders_by_quote_date(self):
        self.client.post("/api/offertes", json={"datum": "2024-01-15"}, headers=ALICE)
        self.client.post("/api/offertes", json={"datum": "2025-06-01"}, headers=ALICE)
        self.client.post("/api/offertes", json={"datum": "2024-11-30"}, headers=ALICE)
        offertes = self.client.get("/api/offertes", headers=ALICE).json()["offertes"]
        self.assertEqual(
            [o["datum"] for o in offertes], ["2025-06-01", "2024-11-30", "2024-01-15"]
        )

    def test_invoice_number_and_amount(self):
        response = self.client.post(
            "/api/facturen",
            json={"items": [{"omschrijving": "Arbeid", "aantal": 8, "prijs": 55}]},
            headers=ALICE,
        )
        self.assertEqual(response.status_code, 201)
        invoice = response.json()
        self.assertTrue(re.match(r"^F\d{4}-\d{6}$", invoice["number"]))
        self.assertEqual(invoice["amount"], 440)
        self.assertEqual(invoice["status"], "draft")

        paid = self.client.put(
            f"/api/facturen/{invoice['id']}", json={"status": "betaald"}, headers=ALICE
        )
        self.assertEqual(paid.json()["status"], "betaald")

        cleared = self.client.put(
            f"/api/facturen/{invoice['id']}", json={"amount": None}, headers=ALICE
        )
        self.assertEqual(cleared.status_code, 400)

    def test_project_status_enum_is_enforced(self):
        ok = self.client.post(
            "/api/projecten", json={"name": "Dakkapel", "status": "On Hold"}, headers=ALICE
        )
        self.assertEqual(ok.status_code, 201)
        self.assertEqual(ok.json()["progress"], 0)

        bad = self.client.post(
            "/api/projecten", json={"name": "Dakkapel", "status": "Klaar"}, headers=ALICE
        )
        self.assertEqual(bad.status_code, 400)


if __name__ == "__main__":
    unittest.main()
