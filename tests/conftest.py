import json
import os
import sys
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

os.environ.setdefault("SECRET_KEY", "test")

from lagamhub import create_app


USERS = [
    {
        "id": "USR-1",
        "name": "Ana Admin",
        "email": "admin@example.com",
        "password": generate_password_hash("pw"),
        "role": "Admin",
    },
    {
        "id": "USR-2",
        "name": "Mario Manager",
        "email": "manager@example.com",
        "password": generate_password_hash("pw"),
        "role": "Manager",
    },
    {
        "id": "USR-3",
        "name": "Olga Operator",
        "email": "olga@example.com",
        "role": "Operator",
    },
    {
        "id": "USR-4",
        "name": "Oscar Operator",
        "email": "oscar@example.com",
        "role": "Operator",
    },
]

TEAMS = [{"id": "1", "name": "Line A", "memberIds": ["USR-2", "USR-3", "USR-4"]}]


def make_lagam(lagam_id="LAG-1", sizes=None, sections=None):
    sizes = sizes if sizes is not None else [
        {"size": "S", "quantity": 100},
        {"size": "M", "quantity": 100},
    ]
    sections = sections if sections is not None else [
        {
            "sectionName": "Cutting",
            "plannedOperations": [
                {"operacion": "Trace", "tiempo": 0.5},
                {"operacion": "Cut", "tiempo": 0.5},
            ],
        },
        {
            "sectionName": "Sewing",
            "plannedOperations": [{"operacion": "Join", "tiempo": 2}],
        },
    ]
    return {
        "lagamId": lagam_id,
        "productInfo": {
            "productName": "Polo",
            "productCode": "P-01",
            "sizes": sizes,
            "totalQuantity": sum(s["quantity"] for s in sizes),
        },
        "teamInfo": {"assignedTeamId": "1"},
        "productionBlueprint": sections,
        "status": "Draft",
    }


def write_collection(data_dir, filename, records):
    path = Path(data_dir) / filename
    path.write_text(json.dumps(records, indent=2), encoding="utf-8")


def read_collection(data_dir, filename):
    path = Path(data_dir) / filename
    if not path.exists():
        return []
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def data_dir(tmp_path):
    directory = tmp_path / "db"
    directory.mkdir()
    write_collection(directory, "users.json", USERS)
    write_collection(directory, "teams.json", TEAMS)
    return directory


@pytest.fixture
def app_instance(data_dir):
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test",
            "RECORD_STORE_BACKEND": "json",
            "DATA_DIR": str(data_dir),
        }
    )
    return app


@pytest.fixture
def client(app_instance):
    return app_instance.test_client()


def login_as(client, user_id="USR-1", role="Admin", name="Ana Admin"):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["name"] = name
        sess["email"] = f"{user_id.lower()}@example.com"
        sess["role"] = role
