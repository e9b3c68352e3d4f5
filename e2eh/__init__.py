"""
e2eh — ブラウザ E2E テストハーネス

ブラウザ上の Web クライアントを操作して DOM の状態を検証し、
シナリオ失敗時に console / network ログ・HTML・スクリーンショットを保存する。
"""

__version__ = "0.1.0"
