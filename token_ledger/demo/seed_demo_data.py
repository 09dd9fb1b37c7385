# token_ledger/demo/seed_demo_data.py

from token_ledger.core.engine import build_engine
from token_ledger.storage.repository import initialize_schema

engine = build_engine()
initialize_schema(engine.ledger.db)

engine.create_account("ACC001", "100.0")
engine.create_account("ACC002", "50.0")

result = engine.generate("ACC001", "25.0")
info = engine.info("ACC001")

print(f"Generated token {result.token}, new balance {result.new_balance}")
print(f"ACC001 holds {len(info.tokens)} token(s), balance {info.balance}")
