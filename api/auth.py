from firebase_admin import auth
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel

from libs.caching.ownership import owner_key


class User(BaseModel):
    uid: str
    email: str | None = None

    @property
    def fingerprint(self) -> str | None:
        """Owner fingerprint used by the thread ownership registry."""
        return owner_key(self.uid, self.email)


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


def get_current_user(request: Request, token: str = Depends(oauth2_scheme)) -> User:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        decoded_token = auth.verify_id_token(token)
        user = User(uid=decoded_token['uid'], email=decoded_token.get('email'))
    except (ValueError, auth.InvalidIdTokenError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication credentials: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except Exception as e:
        # Any other failure while verifying the token
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Could not validate credentials: {e}",
        )

    # The rate limiter keys authenticated callers by uid
    request.state.user = user
    return user
