# src/driftguard/player/base.py


class VideoPlayer:
    """Minimal playback surface the procedure timeline depends on."""

    def seek(self, seconds: float) -> None:
        raise NotImplementedError

    def play(self) -> None:
        raise NotImplementedError

    def pause(self) -> None:
        raise NotImplementedError

    def get_current_time(self) -> float:
        raise NotImplementedError

    @property
    def is_playing(self) -> bool:
        raise NotImplementedError
