"""HTTP connectors to the remote workflow API."""
