"""Command line interface for testing configuration loading"""
from . import settings_conf
from pathlib import Path


def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings_conf.items():
        if key == 'jwt_secret' and value:
            value = '********'
        print(f"{key}: {value}")

    # Save example configuration file
    example_path = Path("settings.conf.example")
    if not example_path.exists():
        with open(example_path, "w") as f:
            f.write("""[DEFAULT]
# PostgreSQL connection URL
db_url = postgresql://postgres@localhost:5432/crescendo
# Connections held open by each process
db_pool_min_size = 2
db_pool_max_size = 10
# Secret shared with the identity service that issues JWTs
jwt_secret = change-me
# Market cap (USD) at which an artist token graduates to a liquidity pool
graduation_threshold_usd = 69000
graduation_check_interval = 60
rtmp_host = localhost
rtmp_port = 1935
hls_host = localhost
hls_port = 8000
api_host = 0.0.0.0
api_port = 8000
""")
        print(f"\nWrote {example_path}")


if __name__ == "__main__":
    main()
