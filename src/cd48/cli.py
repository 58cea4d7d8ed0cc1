"""Command line interface for the cd48 package."""
from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import pandas as pd
import typer

from . import calibration
from .calibration import CalibrationPoint
from .demo import run_demo, simulated_device
from .device.config import DeviceConfig, load_config
from .device.driver import CD48
from .device.errors import (
    CalibrationError,
    CounterAnomaly,
    MalformedResponseError,
    ProtocolError,
    TransportError,
    ValidationError,
)
from .device.measurement import CoincidenceOptions, MeasurementEngine
from .device.responses import ChannelInputs, CountSnapshot, format_counts
from .device.validation import (
    validate_channel,
    validate_duration,
    validate_impedance_mode,
    validate_repeat_interval,
    validate_voltage,
)
from .profiles import CalibrationProfile, JsonProfileStore, describe
from .reporting import MeasurementLog, RateRecord, export_series, records_frame
from .wizard import CalibrationWizard

logger = logging.getLogger(__name__)


@dataclass
class CliState:
    config: DeviceConfig
    mock: bool


app = typer.Typer(add_completion=False, context_settings={"help_option_names": ["-h", "--help"]}, help="CD48 coincidence counter utilities.")
calib_app = typer.Typer(help="Calibration profile utilities.")
app.add_typer(calib_app, name="calib")


@app.callback()
def main(
    ctx: typer.Context,
    port: Optional[str] = typer.Option(None, "--port", "-p", help="Serial device."),
    baudrate: Optional[int] = typer.Option(None, "--baud", help="Serial baudrate."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON host configuration."),
    override: Optional[List[str]] = typer.Option(
        None, "--set", help="Override config keys, e.g. --set protocol.command_delay=0.1"
    ),
    mock: bool = typer.Option(False, "--mock", help="Talk to the simulated counter instead of hardware."),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="-v for info, -vv for wire traffic."),
) -> None:
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    overrides = list(override or [])
    if port:
        overrides.append(f"serial.port={port}")
    if baudrate:
        overrides.append(f"serial.baudrate={baudrate}")
    try:
        cfg = load_config(config_path, overrides or None)
    except (ValueError, OSError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    ctx.obj = CliState(config=cfg, mock=mock)


def _device(state: CliState) -> CD48:
    if state.mock:
        return simulated_device(state.config)
    return CD48(state.config)


@contextlib.contextmanager
def _session(ctx: typer.Context) -> Iterator[CD48]:
    """Open the device and translate driver failures into exit codes."""
    state: CliState = ctx.obj
    device = _device(state)
    try:
        with device:
            yield device
    except TransportError as exc:
        typer.echo(f"Device not available: {exc}", err=True)
        raise typer.Exit(code=3) from exc
    except (ProtocolError, MalformedResponseError) as exc:
        typer.echo(f"Protocol error: {exc}", err=True)
        raise typer.Exit(code=4) from exc
    except CounterAnomaly as exc:
        typer.echo(f"Measurement anomaly (possible counter reset): {exc}", err=True)
        raise typer.Exit(code=5) from exc


def _checked(check, value, hint: str):
    try:
        result = check(value)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc), param_hint=hint) from exc
    return value if result is None else result


def _store(ctx: typer.Context) -> JsonProfileStore:
    return JsonProfileStore(ctx.obj.config.profiles_path)


@app.command()
def version(ctx: typer.Context) -> None:
    """Print the firmware version."""
    with _session(ctx) as device:
        typer.echo(device.get_version())


@app.command()
def counts(
    ctx: typer.Context,
    text: bool = typer.Option(False, "--text", help="Ask the device for its formatted report."),
) -> None:
    """Print the current counter values."""
    with _session(ctx) as device:
        result = device.get_counts(human_readable=text)
    if isinstance(result, CountSnapshot):
        typer.echo(format_counts(result) + f" overflow={result.overflow}")
    else:
        typer.echo(result)


@app.command()
def clear(ctx: typer.Context) -> None:
    """Zero all counters."""
    with _session(ctx) as device:
        device.clear_counts()
    typer.echo("Counters cleared")


@app.command()
def settings(ctx: typer.Context) -> None:
    """Show the device configuration."""
    with _session(ctx) as device:
        record = device.get_settings()
    for channel, inputs in enumerate(record.channels):
        typer.echo(f"ch{channel}: {inputs}")
    typer.echo(f"trigger level: {record.trigger_level}")
    typer.echo(f"DAC voltage: {record.dac_voltage}")
    typer.echo(f"impedance: {record.impedance}")
    state = "on" if record.repeat_enabled else "off"
    typer.echo(f"repeat: {state} every {record.repeat_interval_ms} ms")


@app.command("device-help")
def device_help(ctx: typer.Context) -> None:
    """Print the firmware help text."""
    with _session(ctx) as device:
        typer.echo(device.get_help())


@app.command("test-leds")
def test_leds(ctx: typer.Context) -> None:
    """Cycle the front panel LEDs."""
    with _session(ctx) as device:
        typer.echo(device.test_leds())


@app.command()
def trigger(ctx: typer.Context, voltage: float = typer.Argument(..., help="Trigger level (0-4.08 V).")) -> None:
    """Set the input trigger level."""
    _checked(validate_voltage, voltage, "voltage")
    with _session(ctx) as device:
        device.set_trigger_level(voltage)
    typer.echo(f"Trigger level set to {voltage:.3f} V")


@app.command()
def dac(ctx: typer.Context, voltage: float = typer.Argument(..., help="DAC output (0-4.08 V).")) -> None:
    """Set the DAC output voltage."""
    _checked(validate_voltage, voltage, "voltage")
    with _session(ctx) as device:
        device.set_dac_voltage(voltage)
    typer.echo(f"DAC voltage set to {voltage:.3f} V")


@app.command()
def impedance(ctx: typer.Context, mode: str = typer.Argument(..., help="highz or 50ohm")) -> None:
    """Select the input impedance."""
    normalised = _checked(validate_impedance_mode, mode, "mode")
    with _session(ctx) as device:
        device.set_impedance(normalised)
    typer.echo(f"Impedance set to {normalised}")


@app.command()
def channel(
    ctx: typer.Context,
    index: int = typer.Argument(..., help="Channel 0-7."),
    inputs: str = typer.Argument(..., help="Inputs that must coincide, e.g. AB or A+C."),
) -> None:
    """Configure which inputs increment a channel."""
    _checked(validate_channel, index, "index")
    try:
        selected = ChannelInputs.from_letters(inputs)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="inputs") from exc
    with _session(ctx) as device:
        device.set_channel(index, selected)
    typer.echo(f"ch{index} counts {selected}")


@app.command()
def repeat(
    ctx: typer.Context,
    interval_ms: Optional[int] = typer.Option(None, "--interval", help="Repeat interval (100-65535 ms)."),
    toggle: bool = typer.Option(False, "--toggle", help="Toggle periodic count output."),
) -> None:
    """Configure unsolicited periodic count reports."""
    if interval_ms is None and not toggle:
        raise typer.BadParameter("Provide --interval and/or --toggle")
    if interval_ms is not None:
        _checked(validate_repeat_interval, interval_ms, "--interval")
    with _session(ctx) as device:
        if interval_ms is not None:
            device.set_repeat(interval_ms)
            typer.echo(f"Repeat interval set to {interval_ms} ms")
        if toggle:
            device.toggle_repeat()
            typer.echo("Repeat mode toggled")


@app.command()
def rate(
    ctx: typer.Context,
    index: int = typer.Argument(..., help="Channel 0-7."),
    duration: Optional[float] = typer.Option(None, "--duration", "-d", help="Window in seconds."),
    profile: Optional[str] = typer.Option(None, "--profile", help="Apply this calibration profile."),
) -> None:
    """Measure the count rate of one channel."""
    _checked(validate_channel, index, "index")
    window = duration if duration is not None else ctx.obj.config.measurement.duration
    _checked(validate_duration, window, "--duration")
    cal = _load_profile(ctx, profile) if profile else None
    with _session(ctx) as device:
        result = MeasurementEngine(device).measure_rate(index, window)
    typer.echo(
        f"ch{index}: {result.counts} counts in {result.duration:g} s -> "
        f"{result.rate:.4f} +/- {result.uncertainty:.4f} Hz"
    )
    if cal is not None:
        typer.echo(f"calibrated ({cal.name}): {calibration.apply_lookup(cal, index, result.rate):.4f} Hz")


@app.command()
def coincidence(
    ctx: typer.Context,
    duration: Optional[float] = typer.Option(None, "--duration", "-d", help="Window in seconds."),
    singles_a: Optional[int] = typer.Option(None, "--a", help="Singles channel A."),
    singles_b: Optional[int] = typer.Option(None, "--b", help="Singles channel B."),
    coincidence_channel: Optional[int] = typer.Option(None, "--coinc", help="Coincidence channel."),
    window: Optional[float] = typer.Option(None, "--window", help="Coincidence window (s)."),
) -> None:
    """Measure singles and coincidence rates with accidental subtraction."""
    try:
        options = CoincidenceOptions.from_defaults(
            ctx.obj.config.measurement,
            duration=duration,
            singles_a=singles_a,
            singles_b=singles_b,
            coincidence=coincidence_channel,
            coincidence_window=window,
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    with _session(ctx) as device:
        result = MeasurementEngine(device).measure_coincidence_rate(options)
    typer.echo(f"singles A (ch{options.singles_a}): {result.rate_a:.4f} +/- {result.singles_a.uncertainty:.4f} Hz")
    typer.echo(f"singles B (ch{options.singles_b}): {result.rate_b:.4f} +/- {result.singles_b.uncertainty:.4f} Hz")
    typer.echo(
        f"coincidences (ch{options.coincidence}): {result.coincidence_rate:.4f} "
        f"+/- {result.coincidences.uncertainty:.4f} Hz"
    )
    typer.echo(f"accidentals: {result.accidental_rate:.6g} Hz")
    typer.echo(f"true coincidences: {result.true_coincidence_rate:.4f} Hz")


@app.command()
def monitor(
    ctx: typer.Context,
    channels: List[int] = typer.Argument(..., help="Channels to sample."),
    duration: float = typer.Option(1.0, "--duration", "-d", help="Window per sample (s)."),
    samples: int = typer.Option(10, "--samples", "-n", help="Number of windows per channel."),
    out: Optional[Path] = typer.Option(None, "--out", help="Append rows to this CSV log."),
    report_dir: Optional[Path] = typer.Option(None, "--report", help="Write summary report here."),
    profile: Optional[str] = typer.Option(None, "--profile", help="Apply this calibration profile."),
) -> None:
    """Repeatedly measure channel rates and log them."""
    for index in channels:
        _checked(validate_channel, index, "channels")
    _checked(validate_duration, duration, "--duration")
    cal = _load_profile(ctx, profile) if profile else None
    log = MeasurementLog(out) if out else None
    records: List[RateRecord] = []
    try:
        with _session(ctx) as device:
            engine = MeasurementEngine(device)
            started = device.clock()
            if log is not None:
                log.set_metadata({"device": device.get_version(), "profile": cal.name if cal else "none"})
            for _ in range(samples):
                for index in channels:
                    result = engine.measure_rate(index, duration)
                    calibrated = calibration.apply_lookup(cal, index, result.rate) if cal else None
                    record = RateRecord.from_measurement(device.clock() - started, result, calibrated)
                    records.append(record)
                    if log is not None:
                        log.append(record)
                    typer.echo(f"{record.elapsed_s:8.1f}s ch{index} {record.rate:10.3f} Hz")
    except KeyboardInterrupt:
        logger.info("Monitoring stopped (Ctrl+C)")
    finally:
        if log is not None:
            log.close()
    if report_dir is not None and records:
        report = export_series(records_frame(records), report_dir)
        typer.echo(f"Report written to {report}")


@app.command()
def demo(
    out_dir: Path = typer.Option(Path("demo_output"), "--out", help="Target directory for the demo report."),
    samples: int = typer.Option(30, "--samples", help="Windows per channel."),
) -> None:
    """Run a measurement series against the simulated counter."""
    report = run_demo(out_dir, samples=samples)
    typer.echo(f"Demo report written to {report}")


def _load_profile(ctx: typer.Context, name: str) -> CalibrationProfile:
    profile = _store(ctx).load(name)
    if profile is None:
        raise typer.BadParameter(f"Unknown calibration profile '{name}'", param_hint="--profile")
    return profile


def _profile_or_new(store: JsonProfileStore, name: str) -> CalibrationProfile:
    return store.load(name) or CalibrationProfile(name=name)


@calib_app.command("two-point")
def calib_two_point(
    ctx: typer.Context,
    index: int = typer.Option(..., "--channel", help="Channel 0-7."),
    raw1: float = typer.Option(..., "--raw1"),
    actual1: float = typer.Option(..., "--actual1"),
    raw2: float = typer.Option(..., "--raw2"),
    actual2: float = typer.Option(..., "--actual2"),
    profile: str = typer.Option("default", "--profile", help="Profile to update."),
) -> None:
    """Fit gain/offset through two reference points."""
    _checked(validate_channel, index, "--channel")
    try:
        coeff = calibration.two_point(CalibrationPoint(raw1, actual1), CalibrationPoint(raw2, actual2))
    except CalibrationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    store = _store(ctx)
    target = _profile_or_new(store, profile)
    target.set_coefficients(index, coeff)
    store.save(target)
    typer.echo(f"ch{index}: gain={coeff.gain:.6g} offset={coeff.offset:.6g} -> profile '{profile}'")


@calib_app.command("fit")
def calib_fit(
    ctx: typer.Context,
    input_path: Path = typer.Option(..., "--in", help="CSV with 'raw' and 'actual' columns.", exists=True, readable=True),
    index: int = typer.Option(..., "--channel", help="Channel 0-7."),
    profile: str = typer.Option("default", "--profile", help="Profile to update."),
) -> None:
    """Least-squares fit over many reference points."""
    _checked(validate_channel, index, "--channel")
    df = pd.read_csv(input_path)
    missing = {"raw", "actual"} - set(df.columns)
    if missing:
        raise typer.BadParameter(f"Missing required columns: {sorted(missing)}", param_hint="--in")
    points = [CalibrationPoint(float(row.raw), float(row.actual)) for row in df.itertuples(index=False)]
    try:
        coeff = calibration.multi_point(points)
    except CalibrationError as exc:
        raise typer.BadParameter(str(exc), param_hint="--in") from exc
    stats = calibration.calculate_error(points, coeff.gain, coeff.offset)
    store = _store(ctx)
    target = _profile_or_new(store, profile)
    target.set_coefficients(index, coeff)
    target.metadata[f"fit_points_ch{index}"] = len(points)
    target.metadata[f"fit_max_error_ch{index}"] = stats.max
    store.save(target)
    typer.echo(f"ch{index}: gain={coeff.gain:.6g} offset={coeff.offset:.6g} ({len(points)} points)")
    typer.echo(f"abs error: mean={stats.mean:.4g} std={stats.std:.4g} max={stats.max:.4g}")


@calib_app.command("apply")
def calib_apply(
    ctx: typer.Context,
    raw: float = typer.Argument(..., help="Raw value to convert."),
    index: int = typer.Option(..., "--channel", help="Channel 0-7."),
    profile: str = typer.Option("default", "--profile"),
) -> None:
    """Apply a profile's gain/offset to a raw value."""
    _checked(validate_channel, index, "--channel")
    cal = _load_profile(ctx, profile)
    typer.echo(f"{cal.apply_counts(index, raw):.6g}")


@calib_app.command("background")
def calib_background(
    ctx: typer.Context,
    channels: List[int] = typer.Argument(..., help="Channels to measure."),
    duration: float = typer.Option(10.0, "--duration", "-d"),
    profile: str = typer.Option("default", "--profile"),
) -> None:
    """Record background rates into a profile."""
    for index in channels:
        _checked(validate_channel, index, "channels")
    _checked(validate_duration, duration, "--duration")
    store = _store(ctx)
    with _session(ctx) as device:
        wizard = CalibrationWizard(device, store, profile=_profile_or_new(store, profile))
        backgrounds = wizard.measure_background(channels, duration)
        wizard.save()
    for index, value in backgrounds.items():
        typer.echo(f"ch{index}: {value:.4f} Hz")


@calib_app.command("gain")
def calib_gain(
    ctx: typer.Context,
    index: int = typer.Option(..., "--channel", help="Channel 0-7."),
    reference_rate: float = typer.Option(..., "--reference-rate", help="Known source rate (Hz)."),
    duration: float = typer.Option(10.0, "--duration", "-d"),
    profile: str = typer.Option("default", "--profile"),
) -> None:
    """Derive a channel gain from a reference source."""
    _checked(validate_channel, index, "--channel")
    _checked(validate_duration, duration, "--duration")
    store = _store(ctx)
    with _session(ctx) as device:
        wizard = CalibrationWizard(device, store, profile=_profile_or_new(store, profile))
        try:
            gain = wizard.calibrate_gain(index, reference_rate, duration)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        wizard.save()
        check = wizard.validate()
    typer.echo(f"ch{index}: gain={gain:.6g}")
    for issue in check.issues:
        typer.echo(f"[issue] {issue}")


@calib_app.command("list")
def calib_list(ctx: typer.Context) -> None:
    """List stored profiles."""
    for name in _store(ctx).list_profiles():
        typer.echo(name)


@calib_app.command("show")
def calib_show(ctx: typer.Context, name: str = typer.Argument(...)) -> None:
    """Show one profile."""
    for line in describe(_load_profile(ctx, name)):
        typer.echo(line)


@calib_app.command("delete")
def calib_delete(ctx: typer.Context, name: str = typer.Argument(...)) -> None:
    """Delete one profile."""
    if not _store(ctx).delete(name):
        raise typer.BadParameter(f"Unknown calibration profile '{name}'")
    typer.echo(f"Deleted '{name}'")


@calib_app.command("export")
def calib_export(
    ctx: typer.Context,
    out: Optional[Path] = typer.Option(None, "--out", help="Write to file instead of stdout."),
) -> None:
    """Export every profile as JSON."""
    text = _store(ctx).export()
    if out is None:
        typer.echo(text)
        return
    out.write_text(text, encoding="utf-8")
    typer.echo(f"Exported profiles to {out}")


@calib_app.command("import")
def calib_import(
    ctx: typer.Context,
    input_path: Path = typer.Argument(..., exists=True, readable=True),
    merge: bool = typer.Option(False, "--merge", help="Keep existing profiles."),
) -> None:
    """Import profiles from a JSON export."""
    try:
        count = _store(ctx).import_profiles(input_path.read_text(encoding="utf-8"), merge=merge)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Imported {count} profiles")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
