# pyEnergyFlow Module - Command Line
# -*- coding: utf-8 -*-
"""
 Python module to read live energy flow from a home battery / solar system

 Command Line:
    python -m pyenergyflow <setup|get|watch|history|sites|version>

 Settings come from PE_* environment variables or a .env file in the
 current directory (see pyenergyflow.config).
"""

import argparse
import asyncio
import json
import sys

import dotenv

# Modules
from pyenergyflow import version, set_debug
from pyenergyflow.client import EnergySourceClient
from pyenergyflow.config import JsonFileStore, Settings
from pyenergyflow.display import battery_count_string, battery_direction, home_power, secondary_summary
from pyenergyflow.history import shift_day
from pyenergyflow.models import LoginMode

# Setup parser and groups
p = argparse.ArgumentParser(prog="pyEnergyFlow", description=f"pyEnergyFlow Module v{version}")
subparsers = p.add_subparsers(dest="command", title='commands (run <command> -h to see usage information)',
                              required=True)

setup_args = subparsers.add_parser("setup", help='Sign in to the Fleet API and save tokens for cloud mode')

get_args = subparsers.add_parser("get", help='Get the current power flow snapshot')
get_args.add_argument("-format", type=str, default="text", help="Output format: text, json")

watch_args = subparsers.add_parser("watch", help='Poll and print snapshots until interrupted')

history_args = subparsers.add_parser("history", help='Print battery power and charge history for a day (cloud)')
history_args.add_argument("-days-ago", dest="days_ago", type=int, default=0,
                          help="Day to show, 0 = today [Default=0]")

sites_args = subparsers.add_parser("sites", help='List energy sites (cloud)')

version_args = subparsers.add_parser("version", help='Print version information')

# Add a global debug flag
p.add_argument("-debug", action="store_true", default=False, help="Enable debug output")


def console_authorizer(url: str) -> str:
    print("Open this URL in a browser and sign in:\n")
    print(f"  {url}\n")
    print("After signing in the browser is redirected to your redirect URI.")
    return input("Paste the full redirect URL here: ")


def snapshot_output(client: EnergySourceClient) -> dict:
    data = client.data
    return {
        'site': client.site_info.site_name if client.site_info else None,
        'mode': client.login_mode.value,
        'solar': data.solar_power,
        'battery': data.battery_power,
        'battery_direction': battery_direction(data.battery_power),
        'battery_level': data.battery_percentage,
        'batteries': battery_count_string(data).strip(" ·") or None,
        'home': home_power(data),
        'grid': data.site_power,
        'grid_status': data.grid_state.value,
        'wall_connector': secondary_summary(data),
        'timestamp': data.timestamp.isoformat() if data.timestamp else None,
    }


def print_snapshot(client: EnergySourceClient, output_format: str = "text"):
    output = snapshot_output(client)
    if output_format == 'json':
        print(json.dumps(output, indent=2))
        return
    for item in output:
        name = item.replace("_", " ").title()
        print("  {:<18}{}".format(name, output[item]))
    print("")


async def run_get(client: EnergySourceClient, output_format: str) -> int:
    await client.login()
    await client.stop()
    if client.data is None:
        print(f"ERROR: {client.error_message or 'No data received'}")
        return 1
    print_snapshot(client, output_format)
    return 0


async def run_watch(client: EnergySourceClient) -> int:
    last = [None]

    def on_change(c: EnergySourceClient):
        if c.data is not None and c.data is not last[0]:
            last[0] = c.data
            print_snapshot(c)
        elif c.error_message:
            print(f"ERROR: {c.error_message}")

    client.add_listener(on_change)
    try:
        await client.run()
    finally:
        await client.stop()
    return 0


async def run_history(client: EnergySourceClient, days_ago: int) -> int:
    await client.login()
    now = client.clock()
    await client.fetch_history(shift_day(now, -max(0, days_ago), now))
    await client.stop()
    if client.error_message:
        print(f"ERROR: {client.error_message}")
        return 1
    print(f"History - {client.date_label}\n")
    print("  Battery Power")
    for point in client.battery_power_history:
        tag = f"{point.source.value}->{point.destination.value}" if point.source else ""
        print("    {}  {:>10.0f}  {}".format(point.timestamp.strftime("%H:%M"), point.value, tag))
    print("  Battery Level")
    for point in client.battery_percentage_history:
        print("    {}  {:>9.1f}%".format(point.timestamp.strftime("%H:%M"), point.value))
    return 0


async def run_sites(client: EnergySourceClient) -> int:
    sites = await client.refresh_sites()
    await client.stop()
    if not sites:
        print(f"ERROR: {client.error_message or 'No energy sites found'}")
        return 1
    for index, site in enumerate(sites):
        marker = "*" if index == client.site_index else " "
        print(f" {marker} {index}  {site.id:<14} {site.name}")
    return 0


async def run_setup(client: EnergySourceClient) -> int:
    if await client.login():
        print(f"Setup Complete. Tokens saved to {client.settings.store_path}")
        return 0
    print(f"ERROR: Failed to sign in: {client.error_message}")
    return 1


def main(argv=None) -> int:
    if argv is None and len(sys.argv) == 1:
        p.print_help(sys.stderr)
        return 1
    args = p.parse_args(argv)
    command = args.command

    # Set Debug Mode
    if args.debug:
        set_debug(True)

    if command == 'version':
        print("pyEnergyFlow [%s]" % version)
        return 0

    dotenv.load_dotenv()
    settings = Settings()
    store = JsonFileStore(settings.store_path)
    settings = Settings.load(store)
    if command == 'setup':
        print("pyEnergyFlow [%s] - Fleet API Setup\n" % version)
        settings.login_mode = LoginMode.CLOUD
    client = EnergySourceClient(settings, store=store, authorizer=console_authorizer)

    if command == 'setup':
        return asyncio.run(run_setup(client))
    if command == 'get':
        if args.format == 'text':
            print(f"pyEnergyFlow [{version}] - Power flow using {client.login_mode.value} mode.\n")
        return asyncio.run(run_get(client, args.format))
    if command == 'watch':
        try:
            return asyncio.run(run_watch(client))
        except KeyboardInterrupt:
            return 0
    if command == 'history':
        return asyncio.run(run_history(client, args.days_ago))
    if command == 'sites':
        return asyncio.run(run_sites(client))
    p.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
