"""Command line interface for checking configuration loading"""
from . import get_settings, get_settlement_config, DEFAULTS
from pathlib import Path

SECRET_KEYS = {'stripe_secret_key', 'stripe_webhook_secret', 'admin_token', 'session_secret'}

def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in get_settings().items():
        if key in SECRET_KEYS and value:
            value = '********'
        print(f"{key}: {value}")

    print("\nSettlement Configuration:")
    print("-" * 50)
    for key, value in get_settlement_config().model_dump().items():
        print(f"{key}: {value}")

    # Save example configuration file
    lines = ["[DEFAULT]", "# Every key can also be set as an upper-cased environment variable"]
    lines.extend(f"{key} = {value}" for key, value in DEFAULTS.items())
    Path("settings.conf.example").write_text("\n".join(lines) + "\n")

if __name__ == "__main__":
    main()
