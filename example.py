# Example: pyEnergyFlow Usage Demo
# --------------------------------
# This script demonstrates how to read live power flow with the pyEnergyFlow library.
# It supports local (gateway on your LAN) and cloud (Fleet API) modes.
#
# Usage:
#   - Set your connection mode and credentials in a .env file with the following variables:
#       PE_LOGIN_MODE, PE_HOST, PE_PASSWORD, PE_EMAIL, PE_TIMEZONE, PE_WALL_CONNECTOR_HOST
#     or for cloud mode PE_CLIENT_ID, PE_CLIENT_SECRET, PE_REDIRECT_URI
#   - For cloud mode run "python -m pyenergyflow setup" once first
#   - Run: python example.py

import asyncio

import dotenv

import pyenergyflow
from pyenergyflow.display import battery_count_string, battery_direction, home_power, secondary_summary

# Load environment variables from .env file if present
dotenv.load_dotenv()

# Enable debug logging for more verbose output (optional for learning)
# pyenergyflow.set_debug(True)

store = pyenergyflow.JsonFileStore()
settings = pyenergyflow.Settings.load(store)


async def main():
    client = pyenergyflow.EnergySourceClient(settings, store=store)
    print(f"Connecting using {client.login_mode.value} mode...")
    await client.login()
    await client.refresh_daily()
    if client.data is None:
        print(f"ERROR: {client.error_message}")
        await client.stop()
        return

    data = client.data
    # --- Display Data ---
    print("Battery power level: %0.0f%%" % (data.battery_percentage or 0))
    print("Grid Status: %s" % data.grid_state.value)
    print("")
    print("Grid Power: %0.2fkW" % (data.site_power / 1000.0))
    print("Solar Power: %0.2fkW" % (data.solar_power / 1000.0))
    print("Battery Power: %0.2fkW (%s)%s" % (data.battery_power / 1000.0, battery_direction(data.battery_power),
                                            battery_count_string(data)))
    print("Home Power: %0.2fkW" % (home_power(data) / 1000.0))
    print("Wall Connector: %s" % secondary_summary(data))
    if client.secondary_error:
        print("Wall Connector Error: %s" % client.secondary_error)
    if client.grid_intensity:
        print("Grid Carbon Intensity: %s gCO2/kWh" % client.grid_intensity.carbon_intensity)
    print("")

    # --- History (cloud mode) ---
    if client.login_mode == pyenergyflow.LoginMode.CLOUD:
        await client.fetch_history()
        print("%s: %d battery power points, %d battery level points" % (
            client.date_label, len(client.battery_power_history), len(client.battery_percentage_history)))

    await client.stop()


asyncio.run(main())
