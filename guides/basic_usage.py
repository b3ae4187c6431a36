"""Simple example showing audience creation and token validation."""

import asyncio

from tokenauth import DefaultProvider, StoreConfig, TokenAuth, TokenAuthConfig, ValidationError


async def main():
    """Basic token issuing example."""
    # Open the file-backed store, the janitor starts with it
    config = TokenAuthConfig(store=StoreConfig(path="./data/tokendb.bolt"), token_period=3600)
    auth = await TokenAuth.from_config(config)
    provider = DefaultProvider()

    # Create an audience and issue a token for it
    audience = await auth.new_audience("billing-service", provider.generate_secret_string)
    token = await auth.new_token(audience, provider.generate_token_string)

    print(f"Audience: {audience.id} ({audience.name})")
    print(f"Token: {token.value}")

    # Validate the presented token
    checked = await auth.validate_token(token.value)
    print(f"Valid until: {checked.deadline}")

    try:
        await auth.validate_token("not-a-token")
    except ValidationError as exc:
        print(f"Rejected: {exc}")

    await auth.close()


if __name__ == "__main__":
    asyncio.run(main())
