# tools/handlers.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Declares the three tools the model can call and implements each one:
#
#   controlLight        — set a (simulated) light; echoes the values back
#   setRoomTemperature  — set a (simulated) thermostat; echoes the value back
#   getEmails           — asks the mail gateway for emails and trims each
#                         one down to from / subject / date / snippet
#
# Handlers receive arguments that the orchestrator has already checked
# against the declaration, and return a plain dict.
# ============================================================================

from tools.registry import ToolDeclaration, ToolParameter, ToolRegistry


# ── DECLARATIONS ───────────────────────────────────────────────────────

CONTROL_LIGHT = ToolDeclaration(
    name="controlLight",
    description="Set the brightness and color temperature of a room light.",
    parameters=(
        ToolParameter("brightness", "NUMBER",
                      description="Light level from 0 (off) to 100 (full brightness)"),
        ToolParameter("colorTemperature", "STRING",
                      description="Color temperature such as 'daylight', 'cool' or 'warm'"),
    ),
)

SET_ROOM_TEMPERATURE = ToolDeclaration(
    name="setRoomTemperature",
    description="Set the room temperature.",
    parameters=(
        ToolParameter("temperature", "NUMBER", description="Target temperature in degrees"),
    ),
)

GET_EMAILS = ToolDeclaration(
    name="getEmails",
    description="Fetches emails from Gmail inbox based on the search query.",
    parameters=(
        ToolParameter("searchQuery", "STRING", description="The search query to filter emails"),
    ),
)


# ── HANDLERS ───────────────────────────────────────────────────────────

def control_light(args: dict) -> dict:
    # Demo device: nothing to switch, so report back what was asked for.
    return {
        "brightness": args["brightness"],
        "colorTemperature": args["colorTemperature"],
    }


def set_room_temperature(args: dict) -> dict:
    return {"temperature": args["temperature"]}


def make_get_emails_handler(gateway):
    """
    Build the getEmails handler around a MailGatewayClient.

    Gateway errors are not caught here. The orchestrator wraps them in a
    ToolExecutionError so the turn can carry on.
    """
    def get_emails(args: dict) -> dict:
        records = gateway.fetch_emails(args.get("searchQuery"))
        return {"emails": [record.to_json() for record in records]}

    return get_emails


def build_default_registry(gateway) -> ToolRegistry:
    """Create a registry holding the three assistant tools, in advertised order."""
    registry = ToolRegistry()
    registry.register_all(
        [CONTROL_LIGHT, SET_ROOM_TEMPERATURE, GET_EMAILS],
        {
            CONTROL_LIGHT.name: control_light,
            SET_ROOM_TEMPERATURE.name: set_room_temperature,
            GET_EMAILS.name: make_get_emails_handler(gateway),
        },
    )
    return registry
