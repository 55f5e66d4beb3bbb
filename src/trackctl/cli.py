"""CLI for offline track tooling.

Usage:
    trackctl simulate --trajectory line --center 41.0,29.0 -o track.csv
    trackctl replay track.csv --locations locations.json --phase TO_LOADING
    trackctl analyze gps_20240101_120000.csv
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click

from shared.geo import GeoPoint
from tracker.config import TrackingConfig
from tracker.samples import OperationPhase


def _parse_point(value: str) -> GeoPoint:
    try:
        lat, lon = map(float, value.split(","))
    except ValueError as e:
        raise click.BadParameter(f"expected LAT,LON, got {value!r}") from e
    return GeoPoint(lat=lat, lon=lon)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """Fleet position tracking tools: simulate, replay and analyze tracks."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


@cli.command()
@click.option("--trajectory", type=click.Choice(["line", "circle", "stop"]),
              default="line", help="Track shape")
@click.option("--center", required=True, help="Start (line) or center (circle) as LAT,LON")
@click.option("--duration", type=float, default=60.0, help="Track duration in seconds")
@click.option("--speed", type=float, default=10.0, help="Speed in m/s")
@click.option("--heading", type=float, default=0.0, help="Course for line tracks")
@click.option("--radius", type=float, default=200.0, help="Circle radius in meters")
@click.option("--dt", type=float, default=1.0, help="Seconds between samples")
@click.option("--accuracy", type=float, default=5.0, help="Reported accuracy (m)")
@click.option("--heading-noise", type=float, default=0.0, help="Sensor heading noise (deg)")
@click.option("--no-sensor-heading", is_flag=True, help="Omit sensor course")
@click.option("--sensor-speed", is_flag=True, help="Include sensor ground speed")
@click.option("--seed", type=int, default=None, help="Random seed")
@click.option("--format", "fmt", type=click.Choice(["csv", "nmea"]), default="csv")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=Path("track.csv"))
def simulate(trajectory: str, center: str, duration: float, speed: float, heading: float,
             radius: float, dt: float, accuracy: float, heading_noise: float,
             no_sensor_heading: bool, sensor_speed: bool, seed: int | None,
             fmt: str, output: Path):
    """Generate a synthetic noisy track."""
    from trackctl.simulate import (
        generate_circle, generate_line, generate_stop, to_samples, write_nmea,
    )
    from trackctl.tracks import write_track_csv

    center_pt = _parse_point(center)
    if trajectory == "circle":
        points = generate_circle(center_pt, radius_m=radius, speed_mps=speed, duration=duration, dt=dt)
    elif trajectory == "line":
        points = generate_line(center_pt, heading_deg=heading, speed_mps=speed, duration=duration, dt=dt)
    else:
        points = generate_stop(center_pt, duration=duration, dt=dt)

    samples = to_samples(
        points,
        accuracy_m=accuracy,
        heading_noise_deg=heading_noise,
        sensor_heading=not no_sensor_heading,
        sensor_speed=sensor_speed,
        seed=seed,
    )
    if fmt == "nmea":
        write_nmea(samples, output)
    else:
        write_track_csv(samples, output)
    click.echo(f"Generated {len(samples)} samples ({trajectory}, {duration}s) -> {output}")


@cli.command()
@click.argument("track", type=click.Path(exists=True, path_type=Path))
@click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path),
              help="TrackingConfig JSON")
@click.option("--locations", type=click.Path(exists=True, path_type=Path),
              help="Known locations JSON for proximity detection")
@click.option("--phase", type=click.Choice([p.value for p in OperationPhase]),
              default=None, help="Operation phase for proximity detection")
@click.option("--operation-id", default=None, help="Operation id stamped on telemetry")
@click.option("--telemetry-out", type=click.Path(path_type=Path), help="Write emitted telemetry CSV")
@click.option("--geojson", type=click.Path(path_type=Path), help="Write recorded path GeoJSON")
def replay(track: Path, config_path: Path | None, locations: Path | None, phase: str | None,
           operation_id: str | None, telemetry_out: Path | None, geojson: Path | None):
    """Run the tracking engine over a recorded CSV track."""
    from tracker.directory import load_locations
    from tracker.telemetry import write_records_csv
    from trackctl.replay import replay_track, save_geojson
    from trackctl.tracks import read_track_csv

    config = TrackingConfig()
    if config_path is not None:
        config = TrackingConfig.model_validate_json(config_path.read_text())
    if operation_id is not None:
        config = config.model_copy(update={"operation_id": operation_id})

    samples = read_track_csv(track)
    known = load_locations(locations) if locations else None
    result = asyncio.run(replay_track(
        samples,
        config,
        locations=known,
        phase=OperationPhase(phase) if phase else None,
    ))

    click.echo(result.summary())
    if result.errors and not result.fused:
        raise click.ClickException(f"no fix: {result.errors[-1]}")
    if telemetry_out is not None:
        write_records_csv(result.records, telemetry_out)
        click.echo(f"Telemetry written to {telemetry_out}")
    if geojson is not None:
        save_geojson(result.path, geojson)
        click.echo(f"Path written to {geojson}")


@cli.command()
@click.argument("telemetry_csv", type=click.Path(exists=True, path_type=Path))
def analyze(telemetry_csv: Path):
    """Summarize a telemetry CSV log."""
    from tracker.telemetry import read_records_csv
    from trackctl.replay import analyze_telemetry

    stats = analyze_telemetry(read_records_csv(telemetry_csv))
    click.echo(stats.summary())


if __name__ == "__main__":
    cli()
