from unittest.mock import patch

from fastapi import Depends, FastAPI, Request, status
from fastapi.testclient import TestClient

from api.auth import User, get_current_user

app = FastAPI()


@app.get("/test-secure", response_model=User)
def secure_endpoint(current_user: User = Depends(get_current_user)):
    return current_user


@app.get("/test-state")
def state_endpoint(request: Request, current_user: User = Depends(get_current_user)):
    return {"state_uid": request.state.user.uid, "fingerprint": current_user.fingerprint}


client = TestClient(app)

# Patch where 'auth' is used
AUTH_MODULE_PATH = 'api.auth.auth'


@patch(f'{AUTH_MODULE_PATH}.verify_id_token')
def test_get_current_user_valid_token(mock_verify_id_token):
    mock_verify_id_token.return_value = {'uid': 'test_uid', 'email': 'test@example.com'}
    headers = {"Authorization": "Bearer fake-token"}

    response = client.get("/test-secure", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"uid": "test_uid", "email": "test@example.com"}
    mock_verify_id_token.assert_called_once_with("fake-token")


@patch(f'{AUTH_MODULE_PATH}.verify_id_token')
def test_user_is_stored_on_request_state(mock_verify_id_token):
    mock_verify_id_token.return_value = {'uid': 'uid-ana', 'email': 'Ana@Example.com'}

    response = client.get("/test-state", headers={"Authorization": "Bearer fake-token"})

    assert response.json() == {"state_uid": "uid-ana", "fingerprint": "uid-ana::ana@example.com"}


def test_get_current_user_no_authorization_header():
    response = client.get("/test-secure")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()['detail'] == "Not authenticated"


def test_get_current_user_invalid_bearer_scheme():
    headers = {"Authorization": "NotBearer fake-token"}

    response = client.get("/test-secure", headers=headers)

    # auto_error=False, so our own message is returned
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()['detail'] == "Not authenticated"


@patch(f'{AUTH_MODULE_PATH}.verify_id_token')
def test_get_current_user_firebase_auth_error(mock_verify_id_token):
    from firebase_admin import auth
    mock_verify_id_token.side_effect = auth.InvalidIdTokenError("Invalid token")
    headers = {"Authorization": "Bearer fake-token"}

    response = client.get("/test-secure", headers=headers)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert "Invalid authentication credentials" in response.json()['detail']


@patch(f'{AUTH_MODULE_PATH}.verify_id_token')
def test_get_current_user_unexpected_error(mock_verify_id_token):
    mock_verify_id_token.side_effect = RuntimeError("firebase app not initialized")

    response = client.get("/test-secure", headers={"Authorization": "Bearer fake-token"})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR


def test_fingerprint_requires_some_identity():
    assert User(uid="").fingerprint is None
    assert User(uid="u1").fingerprint == "u1::"
