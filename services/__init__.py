"""
服務層

這個 package 包含純計算邏輯與協作者實作，不負責狀態轉換：
- PayoutService：round-robin 領款與違約計算
- LedgerService：資產帳本（TransferService 實作）
- SchemeStore：Scheme 與事件的 SQL 儲存
"""
