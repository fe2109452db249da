"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- Round Engine：集中管理所有回合狀態轉換
- Scheme：唯一的狀態紀錄與其不變條件
- Manager：把 Round Engine 接上資料庫與交易邊界
- Locks：並發控制工具
"""
