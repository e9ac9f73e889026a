"""
Smoke Test for the Entity Directory API - Visibility & Write Gates

Tests:
1. Member creates a public entity; anonymous GET sees it
2. Admin creates a confidential entity; visitor gets 403 (not 404)
3. Listing as visitor never contains the confidential entity
4. Subscriber cannot create entities (403)
5. Non-owner cannot update or delete (403)
6. Search finds the public entity and hides the confidential one

Run: python smoke_test_directory_api.py

Requirements:
- API running on localhost:8000 (uvicorn entity_directory.main:app)
- SECRET_KEY matching the server's
"""

import sys
import uuid
from typing import Any, Dict, Optional

import requests

from entity_directory.auth_context import create_access_token

BASE_URL = "http://localhost:8000"


class TestResult:
    def __init__(self):
        self.passed = 0
        self.failed = 0

    def add_pass(self, name: str, detail: str = ""):
        self.passed += 1
        print(f"PASS: {name}")
        if detail:
            print(f"  -> {detail}")

    def add_fail(self, name: str, detail: str = ""):
        self.failed += 1
        print(f"FAIL: {name}")
        if detail:
            print(f"  -> {detail}")

    def check_status(self, name: str, resp: requests.Response, expected: int) -> bool:
        if resp.status_code == expected:
            self.add_pass(name, f"status {expected}")
            return True
        self.add_fail(name, f"expected {expected}, got {resp.status_code}: {resp.text[:200]}")
        return False

    def summary(self) -> bool:
        print("\n" + "=" * 60)
        print(f"SMOKE TEST SUMMARY: {self.passed} passed, {self.failed} failed")
        print("=" * 60)
        return self.failed == 0


def headers_for(role: str, user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


def create_entity(headers: Dict[str, str], name: str, **extra: Any) -> Optional[Dict[str, Any]]:
    payload = {
        "name": name,
        "type": "robotics",
        "shortDescription": "Smoke test entity",
        "location": "Austin, TX",
        **extra,
    }
    resp = requests.post(f"{BASE_URL}/entities", json=payload, headers=headers)
    if resp.status_code == 201:
        return resp.json()
    print(f"  create failed: {resp.status_code} {resp.text[:200]}")
    return None


def main() -> int:
    result = TestResult()
    run = uuid.uuid4().hex[:8]

    member = headers_for("member", f"smoke-member-{run}")
    other_member = headers_for("member", f"smoke-other-{run}")
    admin = headers_for("admin", f"smoke-admin-{run}")
    visitor = headers_for("visitor", f"smoke-visitor-{run}")
    subscriber = headers_for("subscriber", f"smoke-subscriber-{run}")

    print("=" * 60)
    print("SMOKE TEST: Entity Directory - Visibility & Write Gates")
    print("=" * 60)

    print("\nTEST 1: Public entity")
    public = create_entity(member, f"Smoke Robotics {run}")
    if not public:
        result.add_fail("Create public entity")
        result.summary()
        return 1
    result.check_status("Anonymous GET public entity", requests.get(f"{BASE_URL}/entities/{public['id']}"), 200)

    print("\nTEST 2: Confidential entity")
    secret = create_entity(admin, f"Smoke Secret Robotics {run}", isConfidential=True)
    if not secret:
        result.add_fail("Create confidential entity")
        result.summary()
        return 1
    result.check_status(
        "Visitor GET confidential entity",
        requests.get(f"{BASE_URL}/entities/{secret['id']}", headers=visitor),
        403,
    )

    print("\nTEST 3: Visitor listing")
    resp = requests.get(f"{BASE_URL}/entities", params={"limit": 200}, headers=visitor)
    if resp.status_code == 200:
        ids = {e["id"] for e in resp.json()["entities"]}
        if secret["id"] in ids:
            result.add_fail("Visitor listing", "confidential entity leaked into listing!")
        else:
            result.add_pass("Visitor listing", f"{len(ids)} entities, none confidential")
    else:
        result.add_fail("Visitor listing", f"unexpected status {resp.status_code}")

    print("\nTEST 4: Subscriber create")
    resp = requests.post(
        f"{BASE_URL}/entities",
        json={"name": "Nope", "type": "robotics", "shortDescription": "Nope"},
        headers=subscriber,
    )
    result.check_status("Subscriber create rejected", resp, 403)

    print("\nTEST 5: Non-owner writes")
    resp = requests.patch(f"{BASE_URL}/entities/{public['id']}", json={"name": "Hijacked"}, headers=other_member)
    result.check_status("Non-owner update rejected", resp, 403)
    resp = requests.delete(f"{BASE_URL}/entities/{public['id']}", headers=other_member)
    result.check_status("Non-owner delete rejected", resp, 403)

    print("\nTEST 6: Search")
    resp = requests.get(f"{BASE_URL}/search/entities", params={"q": f"smoke {run}"}, headers=visitor)
    if resp.status_code == 200:
        found = {r["entity"]["id"] for r in resp.json()["results"]}
        if public["id"] in found and secret["id"] not in found:
            result.add_pass("Search visibility", "public entity found, confidential hidden")
        else:
            result.add_fail("Search visibility", f"results={sorted(found)}")
    else:
        result.add_fail("Search visibility", f"unexpected status {resp.status_code}")

    # Cleanup
    requests.delete(f"{BASE_URL}/entities/{public['id']}", headers=member)
    requests.delete(f"{BASE_URL}/entities/{secret['id']}", headers=admin)

    return 0 if result.summary() else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nTest interrupted by user")
        sys.exit(1)
    except requests.ConnectionError as e:
        print(f"\n\nERROR: cannot reach {BASE_URL}: {e}")
        sys.exit(1)
