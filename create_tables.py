import asyncio

from upload_ledger.database import close_engine, create_tables, engine


async def main():
    await create_tables(engine)
    await close_engine(engine)
    print("Upload ledger tables created successfully!")


asyncio.run(main())
