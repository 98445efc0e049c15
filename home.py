from __future__ import annotations

import streamlit as st

from erp.config import get_settings
from erp.db import get_conn, ensure_schema
from erp.services.inventory import low_stock_items
from erp.services.reports import dashboard_stats

st.set_page_config(page_title="Small Business ERP", page_icon="🧾", layout="wide")

st.title("🧾 Small Business ERP")
st.caption("Sales, purchases and inventory with VAT, margin and weighted-average cost kept consistent across Excel imports.")

settings = get_settings()
conn = get_conn(settings.db_path)
ensure_schema(conn)

with st.sidebar:
    st.subheader("Environment")
    st.write(f"**Data directory:** `{settings.data_dir}`")
    st.write(f"**Database:** `{settings.db_path.name}`")
    st.write(f"**Currency:** {settings.currency}")

stats = dashboard_stats(conn)
c1, c2, c3, c4 = st.columns(4)
c1.metric("Sales", f"{stats['total_sales']:,}")
c2.metric("Profit", f"{stats['total_profit']:,}")
c3.metric("Avg margin", f"{stats['avg_margin_rate']:.1f}%")
c4.metric("Transactions", stats["total_transactions"])

low = low_stock_items(conn)
if low:
    st.warning(f"{len(low)} item(s) at or below minimum stock. See **📦 Inventory**.", icon="⚠️")

st.info(
    "Use the left sidebar navigation. Start with **📥 Excel Import** to bring in an existing 판매현황 / 견적서 workbook, "
    "or **🧪 Data Management** to load demo data.",
    icon="ℹ️",
)
