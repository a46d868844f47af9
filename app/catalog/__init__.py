"""Website Catalog / Evaluation Store.

Client-resident record of websites, the rubric, and each website's last
evaluation set, kept as JSON under versioned keys.
"""
