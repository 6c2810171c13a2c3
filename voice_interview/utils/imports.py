"""
Utilities for silencing noisy native audio and gRPC output.
"""
import os


# Keep PortAudio/JACK from spawning servers and gRPC from flooding stderr
os.environ.setdefault("JACK_NO_START_SERVER", "1")
os.environ.setdefault("GRPC_VERBOSITY", "ERROR")
os.environ.setdefault("GLOG_minloglevel", "2")


def with_suppressed_audio_warnings(func):
    """
    Decorator that suppresses native audio warnings during a function call.
    This temporarily redirects stderr at the file descriptor level, which is
    where ALSA and PortAudio write their diagnostics.
    """
    def wrapper(*args, **kwargs):
        try:
            original_stderr_fd = os.dup(2)
            null_fd = os.open(os.devnull, os.O_WRONLY)
            os.dup2(null_fd, 2)
            os.close(null_fd)
        except OSError:
            original_stderr_fd = None

        try:
            return func(*args, **kwargs)
        finally:
            # Always restore stderr
            if original_stderr_fd is not None:
                try:
                    os.dup2(original_stderr_fd, 2)
                    os.close(original_stderr_fd)
                except OSError:
                    pass

    return wrapper
