"""Host information and small concurrency and text helpers."""