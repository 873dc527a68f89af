"""
Layout Test Fixtures

Fixed UTXO records and graphs shared by the test modules.
All fixtures are explicit - no random generation.
"""

from datetime import datetime

from utxo_layout.aggregation import UtxoRecord
from utxo_layout.contracts import LayoutLink, LayoutNode, NodeKind, RiskLevel


# =============================================================================
# FIXED DATES
# =============================================================================

JAN_01 = datetime(2024, 1, 1)
JAN_15 = datetime(2024, 1, 15)
FEB_01 = datetime(2024, 2, 1)


# =============================================================================
# UTXO RECORDS
# =============================================================================

# Two transactions. The change output of the first (addr1) funds the second.
UTXO_CHANGE = UtxoRecord(
    txid="aaaa1111aaaa1111",
    vout=0,
    address="addr1",
    amount=1.0,
    privacy_risk=RiskLevel.LOW,
    tags=("Change",),
    acquisition_date="2024-01-01",
    sender_address="s1",
    wallet_name="W1"
)

UTXO_PLAIN = UtxoRecord(
    txid="aaaa1111aaaa1111",
    vout=1,
    address="addr2",
    amount=2.0,
    privacy_risk="high",
    wallet_name="W1"
)

UTXO_SPEND = UtxoRecord(
    txid="bbbb2222bbbb2222",
    vout=0,
    address="addr3",
    amount=0.5,
    privacy_risk=RiskLevel.MEDIUM,
    tags=("Exchange",),
    acquisition_date="2024-02-01T00:00:00Z",
    sender_address="addr1",
    wallet_name="W2"
)

SAMPLE_UTXOS = (UTXO_CHANGE, UTXO_PLAIN, UTXO_SPEND)


def make_utxos(count: int, start: int = 0) -> tuple:
    """`count` independent single-output transactions with growing amounts."""
    return tuple(
        UtxoRecord(
            txid=f"tx{i:06d}",
            vout=0,
            address=f"addr{i:06d}",
            amount=0.1 * (i + 1),
            privacy_risk=(RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH)[i % 3],
            acquisition_date=datetime(2024, 1 + i % 12, 1 + i % 28),
            wallet_name=f"W{i % 2}"
        )
        for i in range(start, start + count)
    )


# =============================================================================
# GRAPH FIXTURES
# =============================================================================

def star_graph(leaves: int = 4):
    """One transaction hub linked to `leaves` addresses."""
    hub = LayoutNode(node_id="tx-hub", kind=NodeKind.TRANSACTION, amount=5.0)
    nodes = [hub] + [
        LayoutNode(node_id=f"addr-{i}", kind=NodeKind.ADDRESS, amount=float(i + 1))
        for i in range(leaves)
    ]
    links = [LayoutLink.between(hub, node, value=node.amount) for node in nodes[1:]]
    return nodes, links
