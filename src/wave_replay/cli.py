"""WaveReplay CLI.

Usage:
    wave-replay run        Live silhouette session from the webcam
    wave-replay config     Print or write the default configuration
    wave-replay play       Replay a saved clip in a window
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import typer

from wave_replay.config import ReplayConfig

app = typer.Typer(
    name="wave-replay",
    help="👋 Wave to record a 3-second motion silhouette, then watch it replay.",
    add_completion=False,
)


def _setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def _load_config(path: Optional[str]) -> ReplayConfig:
    if path is None:
        return ReplayConfig()
    config_path = Path(path)
    if not config_path.exists():
        typer.echo(f"❌ Config not found: {path}", err=True)
        raise typer.Exit(1)
    try:
        return ReplayConfig.from_yaml(config_path)
    except ValueError as e:
        typer.echo(f"❌ Invalid config: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def run(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    camera: Optional[int] = typer.Option(None, help="Camera device index (overrides config)"),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="Save recordings here"),
    compact: bool = typer.Option(False, "--compact", help="Also save each recording as a lossless .npz"),
    duration: float = typer.Option(0, help="Stop after N seconds (0 = until q/Esc)"),
    no_display: bool = typer.Option(False, "--no-display", help="Run headless"),
    log_level: str = typer.Option("info", help="Log level"),
):
    """Run a live session: wave left/right to record, up/down to change colors."""
    from wave_replay.engine import ReplayEngine

    _setup_logging(log_level)
    cfg = _load_config(config)
    if camera is not None:
        cfg.camera_index = camera
    if output_dir is not None:
        cfg.output_dir = output_dir
    if compact:
        cfg.save_compact = True

    phases: list[str] = []

    with ReplayEngine(cfg) as engine:
        engine.on_error(lambda e: typer.echo(f"⚠️  {type(e).__name__}: {e}", err=True))
        engine.context.machine.on_phase_change(lambda old, new: phases.append(new.value))

        if not engine.open():
            typer.echo(f"❌ Could not open camera {cfg.camera_index}", err=True)
            raise typer.Exit(1)

        typer.echo(f"🎥 Camera {cfg.camera_index} ready")
        if not no_display:
            typer.echo("   Space = start, r = reset, q/Esc = quit")
        engine.run(display=not no_display, duration=duration)

        typer.echo(f"\n✅ {engine.total_ticks} ticks, {phases.count('recording')} recording(s)")


@app.command("config")
def show_config(
    output: Optional[str] = typer.Option(None, "-o", help="Write YAML here instead of printing"),
):
    """Print the default configuration as YAML."""
    cfg = ReplayConfig()
    if output:
        cfg.to_yaml(output)
        typer.echo(f"💾 Saved to: {output}")
    else:
        typer.echo(cfg.dump_yaml())


@app.command()
def play(
    clip: str = typer.Argument(..., help="Recorded .npz or video file"),
    speed: float = typer.Option(1.0, help="Playback speed multiplier"),
):
    """Replay a saved recording in a window."""
    import cv2
    from wave_replay.recorder import RecordedClip

    path = Path(clip)
    if not path.exists():
        typer.echo(f"❌ Recording not found: {clip}", err=True)
        raise typer.Exit(1)

    recording = RecordedClip.load(path)
    typer.echo(f"▶️  Replaying {path.name} ({recording.frame_count} frames, {recording.duration:.1f}s)")

    recording.play()
    dt = 1.0 / recording.fps
    while recording.is_playing:
        frame = recording.advance(dt * speed)
        if frame is not None:
            cv2.imshow("WaveReplay", frame)
        if cv2.waitKey(max(1, int(dt * 1000))) & 0xFF in (ord("q"), 27):
            break
    cv2.destroyAllWindows()
    recording.release()


def main():
    app()


if __name__ == "__main__":
    main()
