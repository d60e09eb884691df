"""Few-shot examples for LLM Roblox asset generation."""

import json

EXAMPLES = [
    {
        "prompt": "A part that kills players when touched",
        "asset_json": json.dumps({
            "name": "KillBrick",
            "className": "Part",
            "properties": {"Anchored": True, "Transparency": 0.2, "Material": "Neon"},
            "children": [
                {
                    "name": "KillScript",
                    "className": "Script",
                    "source": (
                        "local part = script.Parent\n"
                        "\n"
                        "part.Touched:Connect(function(hit)\n"
                        "\tlocal humanoid = hit.Parent and hit.Parent:FindFirstChildOfClass(\"Humanoid\")\n"
                        "\tif humanoid and humanoid.Health > 0 then\n"
                        "\t\thumanoid.Health = 0\n"
                        "\tend\n"
                        "end)\n"
                    ),
                    "children": [],
                }
            ],
        })
    },
    {
        "prompt": "A coin counter shared between server and client",
        "asset_json": json.dumps([
            {
                "name": "CoinService",
                "className": "ModuleScript",
                "source": (
                    "local CoinService = {}\n"
                    "local balances = {}\n"
                    "\n"
                    "function CoinService.add(player: Player, amount: number): number\n"
                    "\tbalances[player] = (balances[player] or 0) + amount\n"
                    "\treturn balances[player]\n"
                    "end\n"
                    "\n"
                    "return CoinService\n"
                ),
                "children": [],
            },
            {
                "name": "CoinChanged",
                "className": "RemoteEvent",
                "children": [],
            },
        ])
    },
    {
        "prompt": "A main menu with a play button",
        "asset_json": json.dumps({
            "name": "MainMenu",
            "className": "ScreenGui",
            "properties": {"ResetOnSpawn": False},
            "children": [
                {
                    "name": "Background",
                    "className": "Frame",
                    "properties": {"BackgroundTransparency": 0.3},
                    "children": [
                        {
                            "name": "PlayButton",
                            "className": "TextButton",
                            "properties": {"Text": "Play", "TextScaled": True},
                            "children": [
                                {
                                    "name": "PlayHandler",
                                    "className": "LocalScript",
                                    "source": (
                                        "local button = script.Parent\n"
                                        "local gui = button:FindFirstAncestorOfClass(\"ScreenGui\")\n"
                                        "\n"
                                        "button.Activated:Connect(function()\n"
                                        "\tgui.Enabled = false\n"
                                        "end)\n"
                                    ),
                                    "children": [],
                                }
                            ],
                        }
                    ],
                }
            ],
        })
    },
]


def format_few_shot() -> str:
    """Format examples as few-shot prompt text."""
    parts = []
    for ex in EXAMPLES:
        parts.append(f"User: {ex['prompt']}\nAssistant:\n```json\n{ex['asset_json']}\n```")
    return "\n\n".join(parts)
