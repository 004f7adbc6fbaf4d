from devpush.client.http import DevpushClient

__all__ = ["DevpushClient"]
