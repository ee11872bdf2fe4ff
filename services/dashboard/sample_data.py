"""Bundled demo dataset.

A small set of shipping invoices: a duplicated Maersk invoice, an expensive
MSC invoice that stays under the anomaly limit, an unvalidated provider, a
Hapag-Lloyd gap in March and a steadily rising COSCO storage concept.
"""

from typing import Any

SAMPLE_INVOICES: list[dict[str, Any]] = [
    {
        "id": "sample-maersk-1",
        "provider": "Maersk",
        "taxId": "A12345678",
        "invoiceNumber": "INV-2024-001",
        "issueDate": "2024-01-15",
        "dueDate": "2024-02-14",
        "total": 7500.50,
        "taxableBase": 6198.76,
        "taxAmount": 1301.74,
        "lineItems": [
            {"description": "40ft Container Freight", "quantity": 1, "unitPrice": 6000, "totalPrice": 6000},
            {"description": "Port Fees", "quantity": 1, "unitPrice": 198.76, "totalPrice": 198.76},
        ],
    },
    {
        # Same number and total as sample-maersk-1, one day later
        "id": "sample-maersk-1-dup",
        "provider": "Maersk",
        "taxId": "A12345678",
        "invoiceNumber": "INV-2024-001",
        "issueDate": "2024-01-16",
        "dueDate": "2024-02-15",
        "total": 7500.50,
        "taxableBase": 6198.76,
        "taxAmount": 1301.74,
        "lineItems": [
            {"description": "40ft Container Freight", "quantity": 1, "unitPrice": 6000, "totalPrice": 6000},
            {"description": "Port Fees", "quantity": 1, "unitPrice": 198.76, "totalPrice": 198.76},
        ],
    },
    {
        "id": "sample-maersk-2",
        "provider": "Maersk",
        "taxId": "A12345678",
        "invoiceNumber": "INV-2024-002",
        "issueDate": "2024-03-10",
        "dueDate": "2024-04-09",
        "total": 8200.00,
        "taxableBase": 6776.86,
        "taxAmount": 1423.14,
        "lineItems": [
            {"description": "40ft Container Freight", "quantity": 1, "unitPrice": 6500, "totalPrice": 6500},
            {"description": "Cargo Insurance", "quantity": 1, "unitPrice": 200, "totalPrice": 200},
            {"description": "Port Fees", "quantity": 1, "unitPrice": 76.86, "totalPrice": 76.86},
        ],
    },
    {
        "id": "sample-msc-1",
        "provider": "MSC",
        "taxId": "B87654321",
        "invoiceNumber": "MSC-01-2024",
        "issueDate": "2024-01-20",
        "dueDate": "2024-02-19",
        "total": 6800.00,
        "taxableBase": 5619.83,
        "taxAmount": 1180.17,
        "lineItems": [
            {"description": "Ocean Freight", "quantity": 1, "unitPrice": 5500, "totalPrice": 5500},
            {"description": "Document Handling", "quantity": 1, "unitPrice": 119.83, "totalPrice": 119.83},
        ],
    },
    {
        "id": "sample-msc-2",
        "provider": "MSC",
        "taxId": "B87654321",
        "invoiceNumber": "MSC-02-2024",
        "issueDate": "2024-04-05",
        "dueDate": "2024-05-04",
        "total": 15000.00,
        "taxableBase": 12396.69,
        "taxAmount": 2603.31,
        "lineItems": [
            {"description": "Express Ocean Freight", "quantity": 2, "unitPrice": 6000, "totalPrice": 12000},
            {"description": "Congestion Surcharge", "quantity": 1, "unitPrice": 396.69, "totalPrice": 396.69},
        ],
    },
    {
        "id": "sample-seaway-1",
        "provider": "Seaway Logistics",
        "taxId": "C99887766",
        "invoiceNumber": "SL-04-588",
        "issueDate": "2024-04-22",
        "dueDate": "2024-05-21",
        "total": 1250.75,
        "taxableBase": 1033.68,
        "taxAmount": 217.07,
        "lineItems": [
            {"description": "Port Drayage", "quantity": 1, "unitPrice": 800, "totalPrice": 800},
            {"description": "Storage (3 days)", "quantity": 3, "unitPrice": 77.89, "totalPrice": 233.68},
        ],
    },
    {
        "id": "sample-cma-1",
        "provider": "CMA CGM",
        "taxId": "D11223344",
        "invoiceNumber": "CMA-2024-45",
        "issueDate": "2024-02-28",
        "dueDate": "2024-03-29",
        "total": 980.00,
        "taxableBase": 809.92,
        "taxAmount": 170.08,
        "lineItems": [
            {"description": "Port Fees", "quantity": 1, "unitPrice": 500, "totalPrice": 500},
            {"description": "Document Handling", "quantity": 1, "unitPrice": 309.92, "totalPrice": 309.92},
        ],
    },
    {
        "id": "sample-hapag-1",
        "provider": "Hapag-Lloyd",
        "taxId": "E55667788",
        "invoiceNumber": "HL-JAN-24",
        "issueDate": "2024-01-25",
        "dueDate": "2024-02-24",
        "total": 4500.00,
        "taxableBase": 3719.01,
        "taxAmount": 780.99,
        "lineItems": [
            {"description": "Integrated Logistics Services", "quantity": 1, "unitPrice": 3719.01, "totalPrice": 3719.01},
        ],
    },
    {
        "id": "sample-hapag-2",
        "provider": "Hapag-Lloyd",
        "taxId": "E55667788",
        "invoiceNumber": "HL-FEB-24",
        "issueDate": "2024-02-25",
        "dueDate": "2024-03-26",
        "total": 4550.00,
        "taxableBase": 3760.33,
        "taxAmount": 789.67,
        "lineItems": [
            {"description": "Integrated Logistics Services", "quantity": 1, "unitPrice": 3760.33, "totalPrice": 3760.33},
        ],
    },
    # No Hapag-Lloyd invoice for March
    {
        "id": "sample-hapag-4",
        "provider": "Hapag-Lloyd",
        "taxId": "E55667788",
        "invoiceNumber": "HL-APR-24",
        "issueDate": "2024-04-25",
        "dueDate": "2024-05-24",
        "total": 4600.00,
        "taxableBase": 3801.65,
        "taxAmount": 798.35,
        "lineItems": [
            {"description": "Integrated Logistics Services", "quantity": 1, "unitPrice": 3801.65, "totalPrice": 3801.65},
        ],
    },
    {
        "id": "sample-cosco-1",
        "provider": "COSCO",
        "taxId": "F99887766",
        "invoiceNumber": "COS-JAN-01",
        "issueDate": "2024-01-18",
        "dueDate": "2024-02-17",
        "total": 2100.00,
        "taxableBase": 1735.54,
        "taxAmount": 364.46,
        "lineItems": [
            {"description": "Cold Storage", "quantity": 10, "unitPrice": 173.55, "totalPrice": 1735.54},
        ],
    },
    {
        "id": "sample-cosco-2",
        "provider": "COSCO",
        "taxId": "F99887766",
        "invoiceNumber": "COS-FEB-01",
        "issueDate": "2024-02-18",
        "dueDate": "2024-03-19",
        "total": 2310.00,
        "taxableBase": 1909.09,
        "taxAmount": 400.91,
        "lineItems": [
            {"description": "Cold Storage", "quantity": 10, "unitPrice": 190.91, "totalPrice": 1909.09},
        ],
    },
    {
        "id": "sample-cosco-3",
        "provider": "COSCO",
        "taxId": "F99887766",
        "invoiceNumber": "COS-MAR-01",
        "issueDate": "2024-03-18",
        "dueDate": "2024-04-17",
        "total": 2541.00,
        "taxableBase": 2100.00,
        "taxAmount": 441.00,
        "lineItems": [
            {"description": "Cold Storage", "quantity": 10, "unitPrice": 210.00, "totalPrice": 2100.00},
        ],
    },
    {
        "id": "sample-cosco-4",
        "provider": "COSCO",
        "taxId": "F99887766",
        "invoiceNumber": "COS-APR-01",
        "issueDate": "2024-04-18",
        "dueDate": "2024-05-17",
        "total": 2795.10,
        "taxableBase": 2310.00,
        "taxAmount": 485.10,
        "lineItems": [
            {"description": "Cold Storage", "quantity": 10, "unitPrice": 231.00, "totalPrice": 2310.00},
        ],
    },
]
