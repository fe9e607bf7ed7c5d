import os
import random

import pytest
import requests

BASE_URL = os.getenv("TEST_API_BASE_URL", "http://127.0.0.1:8000").rstrip("/")
REQUEST_TIMEOUT = 15


def sync_headers() -> dict[str, str]:
    api_key = str(os.getenv("TEST_SYNC_API_KEY") or "").strip()
    if not api_key:
        pytest.skip("Chave de integracao nao configurada (TEST_SYNC_API_KEY).")

    try:
        response = requests.get(f"{BASE_URL}/health", timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        pytest.skip(f"API indisponivel para testes de integracao: {exc}")
    if response.status_code != 200:
        pytest.skip(f"API sem healthcheck para testes de integracao ({response.status_code}).")

    return {"x-api-key": api_key}


def random_code() -> str:
    return f"9{random.randint(0, 99999):05d}"


def test_sync_create_update_and_move():
    headers = sync_headers()
    asset_code = random_code()

    response = requests.post(
        f"{BASE_URL}/sync-assets/create",
        json={"asset_code": asset_code, "equipment_name": "Teste integracao", "manufacturer": "Malta"},
        headers=headers,
        timeout=REQUEST_TIMEOUT,
    )
    if response.status_code == 409:
        pytest.skip(f"PAT {asset_code} ja existe no ambiente de integracao.")
    assert response.status_code == 201
    assert response.json()["data"]["asset_code"] == asset_code

    response = requests.put(
        f"{BASE_URL}/sync-assets/update/{asset_code}",
        json={"comments": "Atualizado pelo teste de integracao"},
        headers=headers,
        timeout=REQUEST_TIMEOUT,
    )
    assert response.status_code == 200
    assert response.json()["changed_fields"] == ["comments"]

    response = requests.patch(
        f"{BASE_URL}/sync-assets/move/{asset_code}",
        json={"location_type": "aguardando_laudo", "notes": "Teste de integracao"},
        headers=headers,
        timeout=REQUEST_TIMEOUT,
    )
    assert response.status_code == 200
    assert response.json()["new_location"] == "aguardando_laudo"


def test_sync_rejects_wrong_key():
    sync_headers()

    response = requests.post(
        f"{BASE_URL}/sync-assets/create",
        json={"asset_code": random_code()},
        headers={"x-api-key": "chave-invalida"},
        timeout=REQUEST_TIMEOUT,
    )
    assert response.status_code in {401, 429}


def test_healthcheck_db():
    sync_headers()

    response = requests.get(f"{BASE_URL}/health/db", timeout=REQUEST_TIMEOUT)
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
