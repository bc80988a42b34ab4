import hashlib
import hmac
import time


def sign_path(secret: str, path: str, exp_ts: int) -> str:
    msg = f"{path}.{exp_ts}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


def verify_path_signature(secret: str, path: str, exp_ts: int, sig: str) -> bool:
    if int(time.time()) > int(exp_ts):
        return False
    expected = sign_path(secret, path, exp_ts)
    return hmac.compare_digest(expected, sig)
