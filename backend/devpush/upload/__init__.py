from devpush.upload.pipeline import iter_upload_paths, upload_all
from devpush.upload.receiver import ensure_dir, remove_path, safe_target, write_file

__all__ = [
    "ensure_dir",
    "iter_upload_paths",
    "remove_path",
    "safe_target",
    "upload_all",
    "write_file",
]
