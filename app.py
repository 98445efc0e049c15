from __future__ import annotations

import streamlit as st

st.set_page_config(page_title="Small Business ERP", page_icon="🧾", layout="wide")

pages = [
    st.Page("home.py", title="Home", icon="🏠"),
    st.Page("pages/1_📥_Import.py", title="Excel Import", icon="📥"),
    st.Page("pages/2_📦_Inventory.py", title="Inventory", icon="📦"),
    st.Page("pages/3_🛒_Sales.py", title="Sales", icon="🛒"),
    st.Page("pages/4_🚚_Purchases.py", title="Purchases", icon="🚚"),
    st.Page("pages/5_🗂️_Master_Data.py", title="Master Data", icon="🗂️"),
    st.Page("pages/6_🧪_Data_Management.py", title="Data Management", icon="🧪"),
    st.Page("pages/7_📊_Reports.py", title="Reports", icon="📊"),
]

st.navigation(pages).run()
