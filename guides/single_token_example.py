"""Example of single-slot tokens: one live token per device."""

import asyncio

from tokenauth import DefaultProvider, InvalidTokenError, TokenAuth, get_store


async def main():
    store = await get_store("inmemory")
    auth = TokenAuth(store, token_period=600)
    provider = DefaultProvider()
    audience = auth.new_audience_not_store("devices", provider.generate_secret_string)

    first = await auth.new_single_token("device-42", audience, provider.generate_token_string)
    second = await auth.new_single_token("device-42", audience, provider.generate_token_string)

    try:
        await auth.validate_token(first.value)
    except InvalidTokenError:
        print("First token was replaced")

    token = await auth.validate_token(second.value)
    print(f"Current token for {token.single_id}: {token.value}")

    await auth.close()


if __name__ == "__main__":
    asyncio.run(main())
